from fastapi import APIRouter, HTTPException, Depends
from sqlmodel import Session
from typing import List

from app.api.deps import get_project_or_404
from app.exceptions import FeatureforgeException
from app.logging_config import logger
from app.models import Project, get_session
from app.schemas.bug import Bug, BugCreate, BugUpdate, BugFilters, BugFromExecution
from app.services.bugs import BugService

router = APIRouter(prefix="/api/projects", tags=["bugs"])

@router.get("/{project_id}/bugs/statistics")
async def get_bug_statistics(
    project_id: str,
    project: Project = Depends(get_project_or_404),
    session: Session = Depends(get_session),
):
    try:
        return BugService(session, project).get_bug_statistics()
    except Exception as e:
        logger.error(f"Error getting bug statistics for project {project_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error getting bug statistics: {str(e)}")

@router.get("/{project_id}/bugs/failed-executions")
async def get_failed_executions(
    project_id: str,
    project: Project = Depends(get_project_or_404),
    session: Session = Depends(get_session),
):
    """最終実行が失敗したテストケース（手動でのバグ登録候補）を返す"""
    try:
        return BugService(session, project).get_failed_executions()
    except Exception as e:
        logger.error(f"Error getting failed executions for project {project_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error getting failed executions: {str(e)}")

@router.post("/{project_id}/bugs/from-execution", response_model=Bug)
async def create_bug_from_execution(
    project_id: str,
    data: BugFromExecution,
    project: Project = Depends(get_project_or_404),
    session: Session = Depends(get_session),
):
    logger.info(f"Creating bug from failed execution {data.execution_id} ({data.test_case_id})")
    try:
        return BugService(session, project).create_bug_from_failed_execution(data)
    except FeatureforgeException:
        raise
    except Exception as e:
        logger.error(f"Error creating bug from execution: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error creating bug: {str(e)}")

@router.get("/{project_id}/bugs")
async def list_bugs(
    project_id: str,
    filters: BugFilters = Depends(),
    project: Project = Depends(get_project_or_404),
    session: Session = Depends(get_session),
):
    """
    バグ一覧をページングして返す

    Returns:
        dict: bugs, total, page, limit, total_pages
    """
    try:
        result = BugService(session, project).get_bugs(filters)
        result["bugs"] = [Bug.model_validate(bug).model_dump() for bug in result["bugs"]]
        return result
    except Exception as e:
        logger.error(f"Error listing bugs for project {project_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error listing bugs: {str(e)}")

@router.post("/{project_id}/bugs", response_model=Bug)
async def create_bug(
    project_id: str,
    data: BugCreate,
    project: Project = Depends(get_project_or_404),
    session: Session = Depends(get_session),
):
    logger.info(f"Creating bug '{data.title}' in project {project_id}")
    try:
        return BugService(session, project).create_bug(data)
    except FeatureforgeException:
        raise
    except Exception as e:
        logger.error(f"Error creating bug: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error creating bug: {str(e)}")

@router.get("/{project_id}/bugs/{bug_id}", response_model=Bug)
async def get_bug(
    project_id: str,
    bug_id: str,
    project: Project = Depends(get_project_or_404),
    session: Session = Depends(get_session),
):
    try:
        return BugService(session, project).get_bug(bug_id)
    except FeatureforgeException:
        raise
    except Exception as e:
        logger.error(f"Error getting bug {bug_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error getting bug: {str(e)}")

@router.put("/{project_id}/bugs/{bug_id}", response_model=Bug)
async def update_bug(
    project_id: str,
    bug_id: str,
    data: BugUpdate,
    project: Project = Depends(get_project_or_404),
    session: Session = Depends(get_session),
):
    try:
        return BugService(session, project).update_bug(bug_id, data)
    except FeatureforgeException:
        raise
    except Exception as e:
        logger.error(f"Error updating bug {bug_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error updating bug: {str(e)}")

@router.delete("/{project_id}/bugs/{bug_id}")
async def delete_bug(
    project_id: str,
    bug_id: str,
    project: Project = Depends(get_project_or_404),
    session: Session = Depends(get_session),
):
    logger.info(f"Deleting bug {bug_id} from project {project_id}")
    try:
        return BugService(session, project).delete_bug(bug_id)
    except FeatureforgeException:
        raise
    except Exception as e:
        logger.error(f"Error deleting bug {bug_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error deleting bug: {str(e)}")
