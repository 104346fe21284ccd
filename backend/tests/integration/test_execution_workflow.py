"""
featureファイルの同期から実行、バグの自動生成までの一連の流れを確認する結合テスト
"""
import pytest
from sqlmodel import select

from app.models import TestCase
from app.services.bugs import BugService
from app.services.events import ExecutionEventEmitter
from app.services.sync import sync_project
from app.services.test import ExecutionService, RunOptions


@pytest.mark.asyncio
async def test_sync_execute_and_report_bugs(session, project, project_dir, report_runner, make_report):
    sync_result = sync_project(session, project)

    assert sync_result["scenarios_added"] == 2
    feature_text = (project_dir / "src" / "features" / "ecom" / "product.feature").read_text(encoding="utf-8")
    assert "@TC-ECOM-PRODUCT-1" in feature_text
    assert "@TC-ECOM-PRODUCT-2" in feature_text
    assert "-Number" not in feature_text

    created = session.exec(select(TestCase).where(TestCase.test_case_id == "TC-ECOM-PRODUCT-1")).one()
    assert (created.method, created.test_type) == ("POST", "positive")

    report = make_report([
        ("Create a new product", ["@ecom", "@smoke", "@TC-ECOM-PRODUCT-1"], "passed", None),
        ("Get product with invalid id", ["@ecom", "@TC-ECOM-PRODUCT-2", "@regression"], "failed", "Expected: 200\nReceived: 500"),
        ("List products without marker", ["@ecom"], "passed", None),
    ])
    emitter = ExecutionEventEmitter(history_size=20)
    service = ExecutionService(session, project, runner=report_runner(report, exit_code=1), emitter=emitter)

    handle = await service.start_execution(RunOptions(entity="product"))
    summary = await handle.wait()

    assert summary["status"] == "failed"
    assert (summary["total_scenarios"], summary["passed_scenarios"], summary["failed_scenarios"]) == (3, 2, 1)
    assert [e["type"] for e in emitter.recent_events()][0] == "failed"

    session.expire_all()
    statuses = {
        tc.test_case_id: tc.last_run_status
        for tc in session.exec(select(TestCase).where(TestCase.project_id == project.id)).all()
    }
    assert statuses == {"TC-ECOM-PRODUCT-1": "passed", "TC-ECOM-PRODUCT-2": "failed"}

    bugs = BugService(session, project).get_bugs()
    assert bugs["total"] == 1
    bug = bugs["bugs"][0]
    assert bug.bug_id == "BUG-ECOM-PRODUCT-001"
    assert bug.execution_id == handle.execution_id
    assert bug.test_case_id == "TC-ECOM-PRODUCT-2"
    assert bug.severity == "high"
    assert "500" in bug.error_code

    execution = service.get_execution(handle.execution_id)
    assert [r["result"].test_case_id for r in execution["results"]] == ["TC-ECOM-PRODUCT-1", "TC-ECOM-PRODUCT-2", None]


def test_single_marker_feature_registers_one_test_case(session, project, project_dir):
    """マーカー1つのfeatureファイルから TC-ECOM-PRODUCT-1 が登録されること"""
    feature_path = project_dir / "src" / "features" / "ecom" / "product.feature"
    feature_path.write_text(
        "Feature: Product\n"
        "\n"
        "  @TC-ECOM-PRODUCT-Number\n"
        "  Scenario: Create Product with valid data\n"
        "    Given I have valid product data\n"
        "    When I send a POST request to \"/products\"\n"
        "    Then the response status should be 201\n",
        encoding="utf-8",
    )

    sync_project(session, project)

    test_cases = session.exec(select(TestCase).where(TestCase.project_id == project.id)).all()
    assert len(test_cases) == 1
    test_case = test_cases[0]
    assert test_case.test_case_id == "TC-ECOM-PRODUCT-1"
    assert test_case.method == "POST"
    assert test_case.test_type == "positive"
    assert "@TC-ECOM-PRODUCT-1" in feature_path.read_text(encoding="utf-8")
