"""プロジェクト参照（projectId → path / baseUrl / name）"""

from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app.exceptions import NotFoundException, ValidationException
from app.logging_config import logger
from app.models import Project


def get_project(session: Session, project_id: str) -> Project:
    """
    外部IDからプロジェクトを取得する

    Raises:
        NotFoundException: プロジェクトが存在しない場合
    """
    project = session.exec(select(Project).where(Project.project_id == project_id)).first()
    if project is None:
        raise NotFoundException(f"Project {project_id} not found", details={"project_id": project_id})
    return project


def find_project(session: Session, project_id: str) -> Optional[Project]:
    return session.exec(select(Project).where(Project.project_id == project_id)).first()


def list_projects(session: Session) -> List[Project]:
    return list(session.exec(select(Project).order_by(Project.id)).all())


def create_project(
    session: Session,
    project_id: str,
    name: str,
    path: str,
    description: Optional[str] = None,
    base_url: Optional[str] = None,
) -> Project:
    """プロジェクトを登録する（既存のIDは拒否する）"""
    project = Project(project_id=project_id, name=name, path=path, description=description, base_url=base_url)
    try:
        session.add(project)
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ValidationException(f"Project {project_id} already exists", details={"project_id": project_id})
    session.refresh(project)
    logger.info(f"Registered project {project_id} at {path}")
    return project
