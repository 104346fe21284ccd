"""
プロジェクト同期モジュール

src/{features,fixtures,schemas,steps,types}/{section}/{entity}.* からセクションとエンティティを検出し、
各エンティティについてテストケースとステップ定義を同期する。
"""

import time
from typing import Any, Dict, List, Tuple

from sqlmodel import Session

from app.config import get_config
from app.logging_config import logger
from app.models import Project
from app.services.registry import TestCaseRegistry, StepRegistry
from app.utils.path_manager import PathManager, path_manager

IGNORED_STEMS = {"index", "hooks"}


def discover_entities(project: Project, paths: PathManager = path_manager) -> List[Tuple[str, str]]:
    """
    プロジェクト内の (section, entity) の組を検出する

    エンティティ名はファイル名の最初の "." までとし、大文字小文字を区別せずに重複を除く。

    Returns:
        検出順の (section, entity) リスト
    """
    config = get_config()
    seen: Dict[Tuple[str, str], str] = {}
    for asset in config.get(config.paths.ASSET_DIRS):
        for section_dir in paths.list_dir(paths.get_src_dir(project.path, asset)):
            if not section_dir.is_dir() or section_dir.name.startswith("."):
                continue
            for file_path in paths.list_dir(section_dir):
                if not file_path.is_file() or file_path.name.startswith((".", "_")):
                    continue
                entity = file_path.name.split(".")[0]
                if not entity or entity.lower() in IGNORED_STEMS:
                    continue
                seen.setdefault((section_dir.name, entity.upper()), entity)
    return [(section, entity) for (section, _), entity in seen.items()]


def sync_entity(session: Session, project: Project, section: str, entity: str, paths: PathManager = path_manager) -> Dict[str, Any]:
    """1エンティティ分のテストケース・ステップを同期する"""
    case_report = TestCaseRegistry(session, project, paths).resync_entity(section, entity)
    step_report = StepRegistry(session, project, paths).sync_step_file(section, entity)
    return {
        "section": section,
        "entity": entity,
        "test_cases": case_report.model_dump(),
        "steps": step_report.model_dump(),
    }


def sync_project(session: Session, project: Project, paths: PathManager = path_manager) -> Dict[str, Any]:
    """
    プロジェクト全体を同期する

    エンティティ単位のエラーは記録して次のエンティティに進む。

    Args:
        session: データベースセッション
        project: 対象プロジェクト

    Returns:
        同期結果のサマリー
    """
    started = time.monotonic()
    logger.info(f"Starting project sync for {project.project_id}")

    pairs = discover_entities(project, paths)
    sections: List[str] = []
    entities: List[str] = []
    errors: List[Dict[str, Any]] = []
    totals = {"test_cases_synced": 0, "steps_synced": 0, "scenarios_added": 0, "retired": 0}

    for section, entity in pairs:
        if section not in sections:
            sections.append(section)
        entities.append(f"{section}/{entity}")
        try:
            result = sync_entity(session, project, section, entity, paths)
        except Exception as e:
            session.rollback()
            logger.error(f"Error syncing {section}/{entity} in project {project.project_id}: {e}", exc_info=True)
            errors.append({"section": section, "entity": entity, "error": str(e)})
            continue

        cases = result["test_cases"]
        steps = result["steps"]
        totals["test_cases_synced"] += cases["created"] + cases["updated"] + cases["unchanged"]
        totals["scenarios_added"] += cases["created"]
        totals["retired"] += cases["retired"]
        totals["steps_synced"] += steps["created"]
        for message in cases["errors"] + steps["errors"]:
            errors.append({"section": section, "entity": entity, "error": message})

    processing_time = round((time.monotonic() - started) * 1000)
    logger.info(
        f"Project sync for {project.project_id} finished in {processing_time}ms: "
        f"{len(pairs)} entities, {len(errors)} errors"
    )
    return {
        "project_id": project.project_id,
        **totals,
        "processing_time": processing_time,
        "details": {"sections": sections, "entities": entities, "errors": errors},
    }
