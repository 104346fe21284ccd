"""
テスト実行に関連するサービスモジュール
"""
from .test_runner import (
    ScenarioStatus, RunOptions, RunResult, ExecutionContext, CucumberRunner,
)
from .report_parser import (
    StepOutcome, ScenarioOutcome,
    parse_report, read_report, step_statistics, summarize_results,
)
from .execution import ExecutionHandle, ExecutionService, get_global_summary

__all__ = [
    "ScenarioStatus", "RunOptions", "RunResult", "ExecutionContext", "CucumberRunner",
    "StepOutcome", "ScenarioOutcome",
    "parse_report", "read_report", "step_statistics", "summarize_results",
    "ExecutionHandle", "ExecutionService", "get_global_summary",
]
