import logging
from typing import Dict

from app.workers import celery_app
from app.models import base as db
from app.services.projects import find_project
from app.services.sync import sync_entity, sync_project

logger = logging.getLogger(__name__)

@celery_app.task
def sync_project_task(project_id: str) -> Dict:
    """
    プロジェクト全体のテストケース・ステップ定義を同期するCeleryタスク

    Args:
        project_id: プロジェクトID

    Returns:
        dict: 同期結果の情報
    """
    try:
        with db.new_session() as session:
            project = find_project(session, project_id)
            if not project:
                logger.error(f"Project not found: {project_id}")
                return {"status": "error", "message": "Project not found"}

            result = sync_project(session, project)
            logger.info(
                f"Project {project_id} synced: {result['test_cases_synced']} test cases, "
                f"{result['steps_synced']} steps, {len(result['details']['errors'])} errors"
            )
            return {"status": "completed", **result}

    except Exception as e:
        logger.error(f"Error syncing project {project_id}: {e}", exc_info=True)
        return {"status": "error", "message": str(e)}

@celery_app.task
def sync_entity_task(project_id: str, section: str, entity: str) -> Dict:
    """
    1エンティティ分のテストケース・ステップ定義を同期するタスク

    Args:
        project_id: プロジェクトID
        section: セクション
        entity: エンティティ

    Returns:
        同期結果
    """
    try:
        with db.new_session() as session:
            project = find_project(session, project_id)
            if not project:
                logger.error(f"Project not found: {project_id}")
                return {"status": "error", "message": "Project not found"}

            result = sync_entity(session, project, section, entity)
            return {"status": "completed", **result}

    except Exception as e:
        logger.error(f"Error syncing {section}/{entity} in project {project_id}: {e}", exc_info=True)
        return {"status": "error", "message": str(e)}
