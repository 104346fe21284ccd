from fastapi import APIRouter, HTTPException, Depends, Query
from sqlmodel import Session
from typing import Any, Dict, List, Optional

from app.api.deps import get_project_or_404
from app.exceptions import FeatureforgeException
from app.logging_config import logger
from app.models import Project, get_session
from app.schemas.test_schemas import ExecuteTestsRequest, TestExecution, TestResult
from app.services.events import event_emitter
from app.services.test import ExecutionService, RunOptions, get_global_summary

router = APIRouter(prefix="/api/projects", tags=["executions"])
summary_router = APIRouter(prefix="/api/executions", tags=["executions"])


def to_run_options(request: ExecuteTestsRequest) -> RunOptions:
    data = request.model_dump()
    data["entity"] = data.pop("entity_name")
    return RunOptions(**data)


@router.post("/{project_id}/executions")
async def execute_tests(
    project_id: str,
    request: ExecuteTestsRequest,
    project: Project = Depends(get_project_or_404),
    session: Session = Depends(get_session),
):
    """
    テスト実行を開始するAPIエンドポイント

    フィルタの検証後すぐに execution_id を返し、実行はバックグラウンドで継続する。
    検証エラーは実行開始前に 400 / 404 で返る。

    Args:
        project_id: プロジェクトID
        request: 実行フィルタとランナー設定

    Returns:
        dict: 実行ID と状態
    """
    logger.info(f"Starting test execution for project {project_id}: entity={request.entity_name} section={request.section}")
    try:
        handle = await ExecutionService(session, project).start_execution(to_run_options(request))
        logger.info(f"Execution {handle.execution_id} started")
        return {"message": "Test execution started", "execution_id": handle.execution_id, "status": "running"}
    except FeatureforgeException:
        raise
    except Exception as e:
        logger.error(f"Unexpected error in execute_tests: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error starting test execution: {str(e)}")


@router.get("/{project_id}/executions", response_model=List[TestExecution])
async def list_executions(
    project_id: str,
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = None,
    project: Project = Depends(get_project_or_404),
    session: Session = Depends(get_session),
):
    try:
        return ExecutionService(session, project).list_executions(limit, status)
    except Exception as e:
        logger.error(f"Error listing executions for project {project_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error listing executions: {str(e)}")


@router.get("/{project_id}/executions/summary")
async def get_execution_summary(
    project_id: str,
    project: Project = Depends(get_project_or_404),
    session: Session = Depends(get_session),
):
    try:
        summary = ExecutionService(session, project).get_execution_summary()
        summary["running_executions"] = ExecutionService.running_executions()
        return summary
    except Exception as e:
        logger.error(f"Error getting execution summary for project {project_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error getting execution summary: {str(e)}")


@router.get("/{project_id}/executions/history/{entity}")
async def get_execution_history(
    project_id: str,
    entity: str,
    limit: int = Query(10, ge=1, le=100),
    project: Project = Depends(get_project_or_404),
    session: Session = Depends(get_session),
):
    try:
        return ExecutionService(session, project).get_execution_history(entity, limit)
    except Exception as e:
        logger.error(f"Error getting execution history for {entity}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error getting execution history: {str(e)}")


@router.get("/{project_id}/executions/events")
async def get_execution_events(
    project_id: str,
    limit: int = Query(50, ge=1, le=500),
    execution_id: Optional[str] = None,
    project: Project = Depends(get_project_or_404),
):
    """直近の実行イベント（started / progress / completed / failed）を新しい順に返す"""
    events = event_emitter.recent_events(limit=limit, execution_id=execution_id)
    return [event for event in events if event.get("project_id") in (None, project.project_id)]


@router.get("/{project_id}/executions/{execution_id}")
async def get_execution(
    project_id: str,
    execution_id: str,
    project: Project = Depends(get_project_or_404),
    session: Session = Depends(get_session),
):
    """
    実行とシナリオ結果を取得する

    Returns:
        dict: execution と、ステップ統計付きの results
    """
    try:
        data = ExecutionService(session, project).get_execution(execution_id)
        handle = ExecutionService.get_handle(execution_id)
        results: List[Dict[str, Any]] = [
            {**TestResult.model_validate(item["result"]).model_dump(), "statistics": item["statistics"]}
            for item in data["results"]
        ]
        return {
            "execution": TestExecution.model_validate(data["execution"]).model_dump(),
            "results": results,
            "running": handle is not None and not handle.done(),
        }
    except FeatureforgeException:
        raise
    except Exception as e:
        logger.error(f"Error getting execution {execution_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error getting execution: {str(e)}")


@summary_router.get("/summary")
async def get_global_execution_summary(session: Session = Depends(get_session)):
    try:
        return get_global_summary(session)
    except Exception as e:
        logger.error(f"Error getting global execution summary: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error getting execution summary: {str(e)}")
