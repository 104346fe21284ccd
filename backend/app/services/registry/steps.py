"""
ステップ定義の登録モジュール

ステップ定義ファイルを解析してステップ索引に登録する。既に存在する stepId は上書きしない。
"""

from collections import Counter
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from app.exceptions import PersistenceException, StepParseException
from app.logging_config import logger
from app.models import Project, TestStep
from app.services.gherkin import decode_step_file, parse_step_file
from app.utils.path_manager import PathManager, path_manager


class StepSyncReport(BaseModel):
    section: str
    entity: str
    steps_path: str
    skipped: bool = False
    created: int = 0
    existing: int = 0
    step_ids: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class StepRegistry:
    """プロジェクト単位のステップ定義索引"""

    def __init__(self, session: Session, project: Project, paths: PathManager = path_manager):
        self.session = session
        self.project = project
        self.paths = paths

    def _existing_step_ids(self) -> set:
        return set(self.session.exec(
            select(TestStep.step_id).where(TestStep.project_id == self.project.id)
        ).all())

    def sync_step_file(self, section: str, entity: str) -> StepSyncReport:
        """
        ステップ定義ファイルを解析し、未登録のステップだけを登録する

        Args:
            section: セクション
            entity: エンティティ

        Returns:
            StepSyncReport
        """
        steps_path = self.paths.get_steps_path(self.project.path, section, entity)
        report = StepSyncReport(section=section, entity=entity, steps_path=str(steps_path))
        if not self.paths.is_file(steps_path):
            logger.warning(f"Step file not found, skipping: {steps_path}")
            report.skipped = True
            return report

        try:
            parsed = parse_step_file(decode_step_file(self.paths.read_bytes(steps_path), str(steps_path)))
        except StepParseException as e:
            logger.error(f"{e}; skipping {steps_path}")
            report.skipped = True
            report.errors.append(e.message)
            return report
        existing = self._existing_step_ids()

        for step in parsed:
            step_id = step.step_id(section, entity)
            if step_id in existing:
                report.existing += 1
                continue
            test_step = TestStep(
                step_id=step_id,
                project_id=self.project.id,
                section=section,
                entity_name=entity,
                name=step.pattern,
                type=step.keyword,
                definition=step.implementation,
                implementation=step.implementation,
                parameters=step.parameters,
                status="active",
            )
            try:
                self.session.add(test_step)
                self.session.commit()
            except SQLAlchemyError as e:
                self.session.rollback()
                error = PersistenceException(
                    f"Failed to save step {step_id}",
                    details={"step_id": step_id, "error": str(e)}
                )
                logger.error(f"{error}", exc_info=True)
                report.errors.append(error.message)
                continue
            existing.add(step_id)
            report.created += 1
            report.step_ids.append(step_id)

        logger.info(f"Synced steps {section}/{entity}: created={report.created} existing={report.existing}")
        return report

    def list_steps(
        self,
        section: Optional[str] = None,
        entity: Optional[str] = None,
        step_type: Optional[str] = None,
    ) -> List[TestStep]:
        query = select(TestStep).where(TestStep.project_id == self.project.id)
        if section:
            query = query.where(TestStep.section == section)
        if entity:
            query = query.where(TestStep.entity_name == entity)
        if step_type:
            query = query.where(TestStep.type == step_type)
        return list(self.session.exec(query.order_by(TestStep.step_id)).all())

    def get_step_statistics(self) -> Dict[str, Any]:
        """ステップ数を種別・セクション・エンティティごとに集計する"""
        steps = self.list_steps()
        return {
            "total": len(steps),
            "by_type": dict(Counter(step.type for step in steps)),
            "by_section": dict(Counter(step.section for step in steps)),
            "by_entity": dict(Counter(step.entity_name for step in steps)),
        }
