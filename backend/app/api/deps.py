from fastapi import Depends, HTTPException
from sqlmodel import Session

from app.logging_config import logger
from app.models import Project, get_session
from app.services.projects import find_project


def get_project_or_404(project_id: str, session: Session = Depends(get_session)) -> Project:
    """
    プロジェクトの存在を確認し、存在しない場合は404エラーを発生させる

    Args:
        project_id: プロジェクトID
        session: DBセッション

    Returns:
        プロジェクト

    Raises:
        HTTPException: プロジェクトが存在しない場合
    """
    project = find_project(session, project_id)
    if not project:
        logger.error(f"Project not found: {project_id}")
        raise HTTPException(status_code=404, detail=f"Project {project_id} not found")
    return project
