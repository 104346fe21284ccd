from sqlmodel import Field, Relationship
from typing import Optional, List
from .base import TimestampModel

class Project(TimestampModel, table=True):
    __tablename__ = "project"
    """テストプロジェクトモデル（featureファイル群を持つディレクトリ単位）"""
    id: Optional[int] = Field(default=None, primary_key=True)
    project_id: str = Field(index=True, unique=True)
    name: str
    description: Optional[str] = None
    path: str
    base_url: Optional[str] = Field(default=None)

    # リレーションシップ
    test_cases: List["TestCase"] = Relationship(back_populates="project", sa_relationship_kwargs={"cascade": "delete, all"})
    test_steps: List["TestStep"] = Relationship(back_populates="project", sa_relationship_kwargs={"cascade": "delete, all"})
    test_executions: List["TestExecution"] = Relationship(back_populates="project", sa_relationship_kwargs={"cascade": "delete, all"})
    test_suites: List["TestSuite"] = Relationship(back_populates="project", sa_relationship_kwargs={"cascade": "delete, all"})
    bugs: List["Bug"] = Relationship(back_populates="project", sa_relationship_kwargs={"cascade": "delete, all"})
