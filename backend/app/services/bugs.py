"""
バグ管理モジュール

失敗したテスト結果からバグを自動生成し、手動登録・更新・統計を提供します。
"""

import math
import re
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlmodel import Session, select, col

from app.exceptions import NotFoundException, ValidationException
from app.logging_config import logger
from app.models import (
    Bug, BugPriority, BugSeverity, BugStatus, BugType,
    Project, TestCase, TestExecution, TestSuite,
)
from app.models.base import utcnow
from app.schemas.bug import BugCreate, BugFilters, BugFromExecution, BugUpdate
from app.services.identity import next_bug_id
from app.services.test.report_parser import ScenarioOutcome, StepOutcome

MAX_ERROR_MESSAGE_LENGTH = 500
STATUS_CODE_PAIR_RE = re.compile(r"Expected:\s*(\d+)\s*\n\s*Received:\s*(\d+)")
ANY_STATUS_CODE_RE = re.compile(r"(\d{3})")
STACK_TRACE_RE = re.compile(r"at\s+.*\n.*\n.*")
HTTP_METHOD_RE = re.compile(r"(get|post|put|delete|patch)\s+", re.IGNORECASE)
TAG_METHOD_RE = re.compile(r"(get|post|put|delete|patch)", re.IGNORECASE)
BUSINESS_CRITICAL_KEYWORDS = ("critical", "payment", "authentication", "login")
RESOLVED_STATUSES = (BugStatus.RESOLVED.value, BugStatus.CLOSED.value)
# None を受け付けないカラム（明示的な null は未指定として扱う）
REQUIRED_FIELDS = ("title", "description", "type", "severity", "priority", "status", "environment")


def extract_error_details(error_message: Optional[str]) -> Dict[str, str]:
    """
    エラーメッセージからエラー種別・コード・スタックを抽出する

    Args:
        error_message: シナリオのエラーメッセージ

    Returns:
        error_type, error_code, error_stack, error_message（500文字に切り詰め）
    """
    message = error_message or ""

    if "expect(received).toBe(expected)" in message:
        error_type = "AssertionError"
    elif "timeout" in message:
        error_type = "TimeoutError"
    elif "network" in message or "fetch" in message:
        error_type = "NetworkError"
    elif "selector" in message:
        error_type = "SelectorError"
    elif "status code" in message:
        error_type = "HTTPStatusError"
    else:
        error_type = "Unknown"

    error_code = ""
    pair = STATUS_CODE_PAIR_RE.search(message)
    if pair:
        error_code = f"Expected: {pair.group(1)}, Received: {pair.group(2)}"
    else:
        code = ANY_STATUS_CODE_RE.search(message)
        if code:
            error_code = code.group(1)

    stack = STACK_TRACE_RE.search(message)
    return {
        "error_type": error_type,
        "error_code": error_code,
        "error_stack": stack.group(0) if stack else message,
        "error_message": message[:MAX_ERROR_MESSAGE_LENGTH],
    }


def determine_severity(error_message: Optional[str], scenario_name: Optional[str] = None) -> str:
    """
    エラーメッセージとシナリオ名から重要度を判定する（上のルールほど優先）

    Returns:
        critical / high / medium / low
    """
    message = error_message or ""
    name = (scenario_name or "").lower()

    if any(keyword in message for keyword in ("timeout", "network", "connection refused", "ECONNREFUSED")):
        return BugSeverity.CRITICAL.value
    if any(keyword in name for keyword in BUSINESS_CRITICAL_KEYWORDS):
        return BugSeverity.HIGH.value
    if re.search(r"Received:\s*5\d{2}", message):
        return BugSeverity.HIGH.value
    if any(keyword in message for keyword in ("expect(", "toBe(", "AssertionError")) or re.search(r"Received:\s*4\d{2}", message):
        return BugSeverity.MEDIUM.value
    if "status code" in message and ("Expected:" in message or "Received:" in message):
        return BugSeverity.MEDIUM.value
    return BugSeverity.LOW.value


def clean_error_message(error_message: Optional[str]) -> str:
    """スタックトレース・ファイルパス・Expected/Received 部分を取り除いた読みやすいメッセージ"""
    if not error_message:
        return ""
    cleaned = STACK_TRACE_RE.sub("", error_message).strip()
    cleaned = re.sub(r"\([^)]*\)", "", cleaned).strip()
    cleaned = STATUS_CODE_PAIR_RE.sub("", cleaned).strip()
    cleaned = re.sub(r"at\s+Proxy\.<anonymous>", "", cleaned).strip()
    cleaned = re.sub(r"at\s+CustomWorld\.<anonymous>", "", cleaned).strip()
    cleaned = re.sub(r"\n+", "\n", cleaned).strip()
    cleaned = re.sub(r"\s*//\s*Object\.is equality\s*$", "", cleaned).strip()
    return cleaned


def extract_http_method(result: ScenarioOutcome) -> str:
    """シナリオ名 → ステップ名 → タグの順に HTTP メソッドを探す"""
    match = HTTP_METHOD_RE.search(result.scenario_name.lower())
    if match:
        return match.group(1).upper()
    for step in result.steps:
        match = HTTP_METHOD_RE.search(step.step_name.lower())
        if match:
            return match.group(1).upper()
    for tag in result.metadata.get("tags") or []:
        match = TAG_METHOD_RE.search(tag.lower())
        if match:
            return match.group(1).upper()
    return "Unknown"


def extract_test_case_id(result: ScenarioOutcome) -> Optional[str]:
    if result.test_case_id:
        return result.test_case_id
    for tag in list(result.scenario_tags) + list(result.metadata.get("tags") or []):
        if tag.startswith("@TC-"):
            return tag[1:]
    return None


def calculate_actual_execution_time(result: ScenarioOutcome) -> float:
    """ステップの所要時間の合計（ミリ秒）"""
    return sum(step.duration for step in result.steps)


def extract_request_data(steps: List[StepOutcome]) -> Optional[Dict[str, Any]]:
    request: Dict[str, Any] = {"method": "Unknown", "steps": []}
    for step in steps:
        name = step.step_name.lower()
        if not any(keyword in name for keyword in ("send", "post", "put", "get", "delete")):
            continue
        match = re.search(r"(get|post|put|delete)", step.step_name, re.IGNORECASE)
        if match:
            request["method"] = match.group(1).upper()
        request["steps"].append({"step": step.step_name, "status": step.status, "duration": step.duration})
    return request if request["steps"] else None


def extract_response_data(steps: List[StepOutcome]) -> Optional[Dict[str, Any]]:
    response: Dict[str, Any] = {"expected_status": None, "received_status": None, "steps": []}
    for step in steps:
        name = step.step_name.lower()
        if not any(keyword in name for keyword in ("receive", "response", "status", "should")):
            continue
        match = re.search(r"(\d{3})\s*status\s*code", step.step_name, re.IGNORECASE)
        if match:
            response["expected_status"] = match.group(1)
        error_message = step.error_message
        if step.status == "failed" and error_message:
            expected = re.search(r"Expected:\s*(\d+)", error_message)
            received = re.search(r"Received:\s*(\d+)", error_message)
            if expected:
                response["expected_status"] = expected.group(1)
            if received:
                response["received_status"] = received.group(1)
            error_message = clean_error_message(error_message)
        response["steps"].append({
            "step": step.step_name,
            "status": step.status,
            "duration": step.duration,
            "error_message": error_message,
        })
    return response if response["steps"] else None


def _step_kind(step: StepOutcome) -> str:
    return f"{step.hook_type} Hook" if step.is_hook else "Test Step"


def generate_bug_description(result: ScenarioOutcome, execution: Dict[str, Any]) -> str:
    """
    失敗したシナリオのバグ説明（Markdown）を生成する

    Args:
        result: シナリオ結果
        execution: project_name, entity_name, environment, execution_id を含む辞書
    """
    lines = [
        f'Test case "{result.scenario_name}" failed during execution.',
        "",
        "**Execution Details:**",
        f"- Project: {execution.get('project_name') or 'Unknown'}",
        f"- Entity: {execution.get('entity_name') or 'Unknown'}",
        f"- Method: {extract_http_method(result)}",
        f"- Environment: {execution.get('environment') or 'default'}",
        f"- Execution Time: {calculate_actual_execution_time(result)}ms (actual test steps)",
        f"- Total Time: {result.duration}ms (including hooks)",
        f"- Execution ID: {execution.get('execution_id')}",
        f"- Test Case ID: {extract_test_case_id(result) or 'Not found'}",
        "",
        "**Error Details:**",
        result.error_message or "",
        "",
        "**Test Steps:**",
    ]
    for index, step in enumerate(result.steps, start=1):
        entry = f"{index}. {step.step_name} - {step.status} ({step.duration}ms)"
        if step.status == "failed" and step.error_message:
            entry = f"{entry}\n   Error: {step.error_message}"
        lines.append(entry)

    metadata = result.metadata
    lines.extend([
        "",
        "**Metadata:**",
        f"- Feature: {metadata.get('feature') or 'Unknown'}",
        f"- Tags: {', '.join(metadata.get('tags') or []) or 'None'}",
        f"- Scenario ID: {metadata.get('scenario_id') or 'Unknown'}",
        f"- Line: {metadata.get('line') or 'Unknown'}",
        f"- Scenario Tags: {', '.join(result.scenario_tags) or 'None'}",
        "",
        "**Failed Step Analysis:**",
    ])
    failed_steps = [step for step in result.steps if step.status == "failed"]
    for index, step in enumerate(failed_steps, start=1):
        lines.extend([
            f"Failed Step {index}:",
            f"- Name: {step.step_name}",
            f"- Duration: {step.duration}ms",
            f"- Type: {_step_kind(step)}",
            f"- Error: {step.error_message or 'No specific error message'}",
            "",
        ])
    return "\n".join(lines)


def generate_execution_logs(result: ScenarioOutcome, execution: Dict[str, Any]) -> str:
    lines = [
        "=== EXECUTION SUMMARY ===",
        f"Execution ID: {execution.get('execution_id')}",
        f"Project: {execution.get('project_name') or 'Unknown'}",
        f"Entity: {execution.get('entity_name') or 'Unknown'}",
        f"Method: {execution.get('method') or 'Unknown'}",
        f"Environment: {execution.get('environment') or 'default'}",
        f"Started: {execution.get('started_at')}",
        f"Duration: {result.duration}ms",
        f"Status: {result.status}",
        "",
        "=== TEST STEPS EXECUTION ===",
    ]
    for index, step in enumerate(result.steps, start=1):
        lines.extend([
            f"[{index}] {step.step_name}",
            f"  Status: {step.status.upper()}",
            f"  Duration: {step.duration}ms",
            f"  Type: {_step_kind(step)}",
        ])
        if step.status == "failed" and step.error_message:
            lines.append(f"  Error: {step.error_message}")
    return "\n".join(lines)


class BugService:
    """プロジェクト単位のバグ管理"""

    def __init__(self, session: Session, project: Project):
        self.session = session
        self.project = project

    def _find_test_case(self, test_case_id: Optional[str]) -> Optional[TestCase]:
        if not test_case_id:
            return None
        return self.session.exec(
            select(TestCase).where(
                TestCase.project_id == self.project.id,
                TestCase.test_case_id == test_case_id,
            )
        ).first()

    def create_bug(self, data: BugCreate) -> Bug:
        """
        バグを登録する

        手動登録（execution_id なし）の場合は参照するテストケース・テストスイートの存在を確認する。
        自動登録の場合、テストケースが見つかれば名前・セクション・エンティティをテストケースから補完する。

        Raises:
            NotFoundException: 手動登録で参照先が存在しない場合
        """
        section, entity = data.section, data.entity
        test_case_name = data.test_case_name

        test_case = self._find_test_case(data.test_case_id)
        if data.execution_id is None:
            if data.test_case_id and test_case is None:
                raise NotFoundException(f"Test case with ID {data.test_case_id} not found")
            if data.test_suite_id:
                suite = self.session.exec(
                    select(TestSuite).where(
                        TestSuite.project_id == self.project.id,
                        TestSuite.suite_id == data.test_suite_id,
                    )
                ).first()
                if suite is None:
                    raise NotFoundException(f"Test suite with ID {data.test_suite_id} not found")
        elif test_case is not None:
            test_case_name = test_case.name
            section = test_case.section
            entity = test_case.entity_name

        payload = data.model_dump(exclude={"section", "entity", "test_case_name", "priority", "environment", "execution_date"})
        bug = Bug(
            **payload,
            bug_id=next_bug_id(self.session, self.project.id, section, entity),
            project_id=self.project.id,
            test_case_name=test_case_name or data.scenario_name,
            section=section,
            entity=entity,
            priority=data.priority or BugPriority.MEDIUM.value,
            status=BugStatus.OPEN.value,
            environment=data.environment or "default",
            execution_date=data.execution_date or utcnow(),
            reported_at=utcnow(),
        )
        self.session.add(bug)
        self.session.commit()
        self.session.refresh(bug)
        logger.info(f"Bug {bug.bug_id} created for project {self.project.project_id}")
        return bug

    def get_bugs(self, filters: Optional[BugFilters] = None) -> Dict[str, Any]:
        """
        バグ一覧を取得する（報告日時の新しい順、ページング付き）

        Returns:
            bugs, total, page, limit, total_pages
        """
        filters = filters or BugFilters()
        query = select(Bug).where(Bug.project_id == self.project.id)
        for field in ("type", "severity", "priority", "status", "section", "entity",
                      "test_case_id", "test_suite_id", "execution_id", "environment"):
            value = getattr(filters, field)
            if value:
                query = query.where(getattr(Bug, field) == value)
        if filters.search:
            pattern = f"%{filters.search}%"
            query = query.where(or_(
                col(Bug.title).like(pattern),
                col(Bug.description).like(pattern),
                col(Bug.scenario_name).like(pattern),
            ))

        total = self.session.exec(select(func.count()).select_from(query.subquery())).one()
        offset = (filters.page - 1) * filters.limit
        bugs = self.session.exec(
            query.order_by(col(Bug.reported_at).desc(), col(Bug.id).desc()).offset(offset).limit(filters.limit)
        ).all()
        return {
            "bugs": list(bugs),
            "total": total,
            "page": filters.page,
            "limit": filters.limit,
            "total_pages": math.ceil(total / filters.limit),
        }

    def get_bug(self, bug_id: str) -> Bug:
        bug = self.session.exec(
            select(Bug).where(Bug.project_id == self.project.id, Bug.bug_id == bug_id)
        ).first()
        if bug is None:
            raise NotFoundException(f"Bug with ID {bug_id} not found", details={"bug_id": bug_id})
        return bug

    def update_bug(self, bug_id: str, data: BugUpdate) -> Bug:
        """バグを更新する。resolved / closed への変更時は resolved_at を記録する"""
        bug = self.get_bug(bug_id)
        changes = data.model_dump(exclude_unset=True)
        if changes.get("status") is not None and changes["status"] not in {s.value for s in BugStatus}:
            raise ValidationException(f"Invalid bug status: {changes['status']}")
        for key, value in changes.items():
            if value is None and key in REQUIRED_FIELDS:
                continue
            setattr(bug, key, value)
        if changes.get("status") in RESOLVED_STATUSES:
            bug.resolved_at = utcnow()
        bug.updated_at = utcnow()
        self.session.add(bug)
        self.session.commit()
        self.session.refresh(bug)
        logger.info(f"Bug {bug_id} updated")
        return bug

    def delete_bug(self, bug_id: str) -> Dict[str, Any]:
        bug = self.get_bug(bug_id)
        self.session.delete(bug)
        self.session.commit()
        logger.info(f"Bug {bug_id} deleted")
        return {"success": True, "message": f"Bug {bug_id} deleted successfully"}

    def create_bugs_from_execution(self, execution: TestExecution, results: List[ScenarioOutcome]) -> List[Bug]:
        """
        実行結果の失敗シナリオごとにバグを自動生成する

        1件の生成に失敗しても残りのシナリオの処理を続ける。

        Args:
            execution: 対象の実行
            results: シナリオ結果

        Returns:
            生成したバグのリスト
        """
        context = {
            "execution_id": execution.execution_id,
            "project_name": self.project.name,
            "entity_name": execution.entity_name,
            "method": execution.method,
            "environment": (execution.options or {}).get("environment"),
            "started_at": execution.started_at,
        }
        created: List[Bug] = []
        for result in results:
            if result.status != "failed" or not result.error_message:
                continue
            try:
                details = extract_error_details(result.error_message)
                test_case_id = extract_test_case_id(result)
                test_case = self._find_test_case(test_case_id)
                if test_case is not None:
                    section, entity = test_case.section, test_case.entity_name
                else:
                    section = execution.section or "Unknown"
                    entity = execution.entity_name or "Unknown"
                bug = self.create_bug(BugCreate(
                    title=f"Test Failure: {result.scenario_name}",
                    description=generate_bug_description(result, context),
                    type=BugType.TEST_FAILURE.value,
                    severity=determine_severity(result.error_message, result.scenario_name),
                    priority=BugPriority.MEDIUM.value,
                    scenario_name=result.scenario_name,
                    test_case_id=test_case_id,
                    test_case_name=test_case.name if test_case else result.scenario_name,
                    test_suite_id=execution.test_suite_id,
                    execution_id=execution.execution_id,
                    section=section,
                    entity=entity,
                    method=extract_http_method(result),
                    error_message=clean_error_message(result.error_message),
                    error_type=details["error_type"],
                    error_code=details["error_code"],
                    error_stack=details["error_stack"],
                    request_data=extract_request_data(result.steps),
                    response_data=extract_response_data(result.steps),
                    execution_time=calculate_actual_execution_time(result),
                    execution_logs=generate_execution_logs(result, context),
                    console_logs=f"Error: {result.error_message}",
                    environment=context["environment"] or "default",
                ))
                created.append(bug)
            except Exception as e:
                self.session.rollback()
                logger.warning(f"Failed to create bug for test {result.scenario_name}: {e}", exc_info=True)

        logger.info(f"Created {len(created)} bugs from execution {execution.execution_id}")
        return created

    def get_failed_executions(self) -> List[Dict[str, Any]]:
        """最終実行が失敗したテストケースの一覧"""
        test_cases = self.session.exec(
            select(TestCase).where(
                TestCase.project_id == self.project.id,
                TestCase.last_run_status == "failed",
                col(TestCase.last_run).is_not(None),
            ).order_by(col(TestCase.last_run).desc())
        ).all()
        return [
            {
                "execution_id": tc.last_run.isoformat(),
                "test_case_id": tc.test_case_id,
                "test_case_name": tc.name,
                "entity_name": tc.entity_name,
                "section": tc.section,
                "method": tc.method,
                "endpoint": "",
                "error_message": "Test execution failed",
                "execution_date": tc.last_run,
            }
            for tc in test_cases
        ]

    def create_bug_from_failed_execution(self, data: BugFromExecution) -> Bug:
        """
        失敗したテストケースからバグを手動登録する

        Raises:
            NotFoundException: テストケースが存在しない場合
        """
        test_case = self._find_test_case(data.test_case_id)
        if test_case is None:
            raise NotFoundException(f"Test case with ID {data.test_case_id} not found")
        return self.create_bug(BugCreate(
            title=data.title or f"Test failure in {test_case.name}",
            description=data.description or f"Test case {test_case.name} failed during execution",
            type=data.type or BugType.TEST_FAILURE.value,
            severity=data.severity or BugSeverity.MEDIUM.value,
            priority=data.priority or BugPriority.MEDIUM.value,
            test_case_id=test_case.test_case_id,
            test_case_name=test_case.name,
            execution_id=data.execution_id,
            scenario_name=test_case.name,
            error_message=data.error_message or "Test execution failed",
            section=test_case.section,
            entity=test_case.entity_name,
            method=test_case.method,
            endpoint="",
            execution_date=test_case.last_run,
            environment=data.environment or "default",
        ))

    def get_bug_statistics(self) -> Dict[str, Any]:
        bugs = self.session.exec(select(Bug).where(Bug.project_id == self.project.id)).all()

        def group(field: str) -> Dict[str, int]:
            counts: Dict[str, int] = {}
            for bug in bugs:
                key = getattr(bug, field)
                counts[key] = counts.get(key, 0) + 1
            return counts

        statuses = group("status")
        return {
            "total": len(bugs),
            "open": statuses.get(BugStatus.OPEN.value, 0),
            "in_progress": statuses.get(BugStatus.IN_PROGRESS.value, 0),
            "resolved": statuses.get(BugStatus.RESOLVED.value, 0),
            "closed": statuses.get(BugStatus.CLOSED.value, 0),
            "by_severity": group("severity"),
            "by_type": group("type"),
            "by_priority": group("priority"),
        }
