"""
サービス層のモジュール
"""
from .gherkin import parse_feature, find_markers, resolve_placeholders, parse_step_file
from .registry import TestCaseRegistry, StepRegistry
from .sync import sync_project, sync_entity, discover_entities
from .events import ExecutionEventEmitter, event_emitter
from .test import (
    RunOptions, ExecutionContext, CucumberRunner,
    ScenarioOutcome, parse_report, read_report,
    ExecutionHandle, ExecutionService, get_global_summary,
)
from .test.suites import TestSuiteService
from .bugs import BugService

__all__ = [
    # featureファイル・ステップ定義の解析
    "parse_feature", "find_markers", "resolve_placeholders", "parse_step_file",

    # 同期
    "TestCaseRegistry", "StepRegistry",
    "sync_project", "sync_entity", "discover_entities",

    # 実行
    "ExecutionEventEmitter", "event_emitter",
    "RunOptions", "ExecutionContext", "CucumberRunner",
    "ScenarioOutcome", "parse_report", "read_report",
    "ExecutionHandle", "ExecutionService", "get_global_summary",
    "TestSuiteService",

    # バグ
    "BugService",
]
