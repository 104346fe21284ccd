from fastapi import APIRouter, HTTPException, Depends, Query
from sqlmodel import Session
from typing import List, Optional

from app.api.deps import get_project_or_404
from app.exceptions import FeatureforgeException
from app.logging_config import logger
from app.models import Project, get_session
from app.schemas.project import ProjectCreate, Project as ProjectSchema
from app.schemas.test_schemas import TestCase, TestStep
from app.services import projects as project_service
from app.services.registry import TestCaseRegistry, StepRegistry
from app.services.sync import sync_entity, sync_project
from app.workers.tasks import sync_project_task

router = APIRouter(prefix="/api/projects", tags=["projects"])

@router.get("/", response_model=List[ProjectSchema])
async def list_projects(session: Session = Depends(get_session)):
    logger.info("Listing all projects")
    try:
        return project_service.list_projects(session)
    except Exception as e:
        logger.error(f"Error listing projects: {e}")
        raise HTTPException(status_code=500, detail=f"Error listing projects: {str(e)}")

@router.post("/", response_model=ProjectSchema)
async def create_project(project: ProjectCreate, session: Session = Depends(get_session)):
    """
    プロジェクトを登録するAPIエンドポイント

    Args:
        project: プロジェクトID・名前・テストプロジェクトのパス・ベースURL
    """
    try:
        if project_service.find_project(session, project.project_id):
            logger.warning(f"Project already exists: {project.project_id}")
            raise HTTPException(status_code=409, detail="Project already exists")

        created = project_service.create_project(
            session,
            project_id=project.project_id,
            name=project.name,
            path=project.path,
            description=project.description,
            base_url=project.base_url,
        )
        logger.info(f"Created new project: {project.project_id}")
        return created
    except HTTPException:
        raise
    except FeatureforgeException:
        raise
    except Exception as e:
        logger.error(f"Error creating project: {e}")
        raise HTTPException(status_code=500, detail=f"Error creating project: {str(e)}")

@router.get("/{project_id}", response_model=ProjectSchema)
async def get_project(project_id: str, project: Project = Depends(get_project_or_404)):
    return project

@router.post("/{project_id}/sync")
async def sync_project_endpoint(
    project_id: str,
    inline: bool = Query(False, description="trueの場合はワーカーを使わずに同期を実行します"),
    project: Project = Depends(get_project_or_404),
    session: Session = Depends(get_session),
):
    """
    プロジェクト内の全エンティティについてテストケースとステップ定義を同期する

    Args:
        project_id: プロジェクトID
        inline: 同期をリクエスト内で実行するかどうか

    Returns:
        inline の場合は同期結果、それ以外は同期タスクの情報
    """
    logger.info(f"Triggering sync for project {project_id} (inline={inline})")
    try:
        if inline:
            return {"status": "completed", **sync_project(session, project)}

        task_id = sync_project_task.delay(project_id).id
        if not task_id:
            logger.error(f"Failed to trigger sync task for project {project_id}")
            raise HTTPException(status_code=500, detail="Failed to start sync task")

        logger.info(f"Sync task started with ID: {task_id}")
        return {"message": "Project sync started", "task_id": task_id, "status": "syncing"}
    except HTTPException:
        raise
    except FeatureforgeException:
        raise
    except Exception as e:
        logger.error(f"Unexpected error in sync_project: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error syncing project: {str(e)}")

@router.post("/{project_id}/sync/{section}/{entity}")
async def sync_entity_endpoint(
    project_id: str,
    section: str,
    entity: str,
    project: Project = Depends(get_project_or_404),
    session: Session = Depends(get_session),
):
    logger.info(f"Syncing {section}/{entity} in project {project_id}")
    try:
        return sync_entity(session, project, section, entity)
    except FeatureforgeException:
        raise
    except Exception as e:
        logger.error(f"Error syncing {section}/{entity}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error syncing entity: {str(e)}")

@router.post("/{project_id}/test-cases/register/{section}/{entity}")
async def register_test_cases(
    project_id: str,
    section: str,
    entity: str,
    project: Project = Depends(get_project_or_404),
    session: Session = Depends(get_session),
):
    """
    featureファイルの未解決マーカー（@TC-...-Number）に番号を割り当ててテストケースを登録する
    """
    logger.info(f"Registering test cases from placeholders: {section}/{entity}")
    try:
        report = TestCaseRegistry(session, project).register_from_placeholders(section, entity)
        return report.model_dump()
    except FeatureforgeException:
        raise
    except Exception as e:
        logger.error(f"Error registering test cases for {section}/{entity}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error registering test cases: {str(e)}")

@router.get("/{project_id}/test-cases", response_model=List[TestCase])
async def list_test_cases(
    project_id: str,
    section: Optional[str] = None,
    entity: Optional[str] = None,
    include_deprecated: bool = False,
    project: Project = Depends(get_project_or_404),
    session: Session = Depends(get_session),
):
    try:
        return TestCaseRegistry(session, project).list_test_cases(section, entity, include_deprecated)
    except Exception as e:
        logger.error(f"Error getting test cases for project {project_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error getting test cases: {str(e)}")

@router.get("/{project_id}/steps", response_model=List[TestStep])
async def list_steps(
    project_id: str,
    section: Optional[str] = None,
    entity: Optional[str] = None,
    step_type: Optional[str] = Query(None, alias="type"),
    project: Project = Depends(get_project_or_404),
    session: Session = Depends(get_session),
):
    try:
        return StepRegistry(session, project).list_steps(section, entity, step_type)
    except Exception as e:
        logger.error(f"Error getting steps for project {project_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error getting steps: {str(e)}")

@router.get("/{project_id}/steps/statistics")
async def get_step_statistics(
    project_id: str,
    project: Project = Depends(get_project_or_404),
    session: Session = Depends(get_session),
):
    try:
        return StepRegistry(session, project).get_step_statistics()
    except Exception as e:
        logger.error(f"Error getting step statistics for project {project_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error getting step statistics: {str(e)}")
