from enum import Enum
from datetime import datetime
from sqlalchemy import Column, Text
from sqlmodel import Field, Relationship
from typing import Optional, Dict, Any
from .base import TimestampModel, utcnow
from .json_encode_dict import JSONEncodedDict


class BugType(str, Enum):
    SYSTEM_BUG = "system_bug"
    FRAMEWORK_ERROR = "framework_error"
    TEST_FAILURE = "test_failure"
    ENVIRONMENT_ISSUE = "environment_issue"


class BugSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class BugPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class BugStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class Bug(TimestampModel, table=True):
    __tablename__ = "bug"
    """失敗したテスト結果から生成される不具合レコード"""
    id: Optional[int] = Field(default=None, primary_key=True)
    bug_id: str = Field(index=True)
    project_id: int = Field(foreign_key="project.id", index=True)
    # 読みやすいID（TC-...）と実際のテストケース名は別々に保持する
    test_case_id: Optional[str] = Field(default=None, index=True)
    test_case_name: Optional[str] = None
    test_suite_id: Optional[str] = None
    execution_id: Optional[str] = Field(default=None, index=True)
    title: str
    description: str = Field(default="", sa_column=Column(Text))
    scenario_name: Optional[str] = None
    type: str = BugType.TEST_FAILURE.value
    severity: str = BugSeverity.MEDIUM.value
    priority: str = BugPriority.MEDIUM.value
    status: str = BugStatus.OPEN.value
    error_message: Optional[str] = Field(default=None, sa_column=Column(Text))
    error_type: Optional[str] = None
    error_stack: Optional[str] = Field(default=None, sa_column=Column(Text))
    error_code: Optional[str] = None
    section: Optional[str] = None
    entity: Optional[str] = None
    method: Optional[str] = None
    endpoint: Optional[str] = None
    request_data: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSONEncodedDict))
    response_data: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSONEncodedDict))
    execution_time: Optional[float] = None
    execution_date: datetime = Field(default_factory=utcnow)
    execution_logs: Optional[str] = Field(default=None, sa_column=Column(Text))
    console_logs: Optional[str] = Field(default=None, sa_column=Column(Text))
    environment: str = "default"
    reported_at: datetime = Field(default_factory=utcnow)
    resolved_at: Optional[datetime] = None

    # リレーションシップ
    project: "Project" = Relationship(back_populates="bugs")
