# テスト関連モデルのパッケージ
from .suite import TestSuite, TestSuiteType, TestSuiteStatus
from .case import TestCase, TestCaseStatus, TestType
from .step import TestStep, StepType
from .result import TestExecution, TestResult, ExecutionStatus

__all__ = [
    "TestSuite",
    "TestSuiteType",
    "TestSuiteStatus",
    "TestCase",
    "TestCaseStatus",
    "TestType",
    "TestStep",
    "StepType",
    "TestExecution",
    "TestResult",
    "ExecutionStatus",
]
