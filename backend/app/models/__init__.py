from .base import TimestampModel, get_session, new_session, engine
from .project import Project
from .test import (
    TestSuite, TestSuiteType, TestSuiteStatus,
    TestCase, TestCaseStatus, TestType,
    TestStep, StepType,
    TestExecution, TestResult, ExecutionStatus,
)
from .bug import Bug, BugType, BugSeverity, BugPriority, BugStatus

__all__ = [
    "TimestampModel", "get_session", "new_session", "engine",
    "Project",
    "TestSuite", "TestSuiteType", "TestSuiteStatus",
    "TestCase", "TestCaseStatus", "TestType",
    "TestStep", "StepType",
    "TestExecution", "TestResult", "ExecutionStatus",
    "Bug", "BugType", "BugSeverity", "BugPriority", "BugStatus",
]

def init_db():
    """データベーススキーマを初期化する"""
    from sqlmodel import SQLModel
    from . import base

    SQLModel.metadata.create_all(base.engine)
