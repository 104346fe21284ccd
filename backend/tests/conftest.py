import pytest
import os
from pathlib import Path
from sqlmodel import SQLModel, create_engine, Session
from sqlalchemy.pool import StaticPool

os.environ["TESTING"] = "1"

TEST_BASE_DIR = "/tmp/test_featureforge"
os.environ["PROJECTS_DIR"] = f"{TEST_BASE_DIR}/projects"
os.makedirs(f"{TEST_BASE_DIR}/projects", exist_ok=True)

import app.config
app.config.settings.PROJECTS_DIR = f"{TEST_BASE_DIR}/projects"

# 全テストで同じインメモリDBを共有する（バックグラウンド実行の別セッションからも参照できるように StaticPool を使う）
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

import app.models.base
app.models.base.engine = engine

from app.models import Project

PRODUCT_FEATURE = """@ecom
Feature: Product API

  @smoke
  @TC-ECOM-PRODUCT-Number
  Scenario: Create a new product
    Given I have valid product data
    When I send a POST request to "/products"
    Then the response status should be 201

  @TC-ECOM-PRODUCT-Number
  @regression
  Scenario: Get product with invalid id
    When I send a GET request to "/products/unknown"
    Then the response status should be 404

  Scenario: List products without marker
    When I send a GET request to "/products"
    Then the response status should be 200
"""

PRODUCT_STEPS = """import { Given, When, Then } from '@cucumber/cucumber';

Given('I have valid product data', function () {
  this.payload = { name: 'Widget' };
});

When('I send a {method} request to {path}', async function (method, path) {
  this.response = await this.request(method, path, this.payload);
});

Then('the response status should be {status}', function (status) {
  expect(this.response.status).toBe(Number(status));
});
"""


@pytest.fixture(autouse=True)
def reset_database():
    """各テストの前にデータベースを作り直す"""
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    yield


@pytest.fixture(name="engine")
def engine_fixture():
    """テスト用のSQLiteエンジンを返す"""
    yield engine


@pytest.fixture(name="session")
def session_fixture():
    """テスト用のインメモリSQLiteデータベースセッションを作成"""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="project_dir")
def project_dir_fixture(tmp_path) -> Path:
    """featureファイルとステップ定義を持つテストプロジェクトを作成"""
    root = tmp_path / "ecommerce"
    (root / "src" / "features" / "ecom").mkdir(parents=True)
    (root / "src" / "steps" / "ecom").mkdir(parents=True)
    (root / "src" / "features" / "ecom" / "product.feature").write_text(PRODUCT_FEATURE, encoding="utf-8")
    (root / "src" / "steps" / "ecom" / "product.steps.ts").write_text(PRODUCT_STEPS, encoding="utf-8")
    (root / "src" / "steps" / "hooks.ts").write_text("// hooks\n", encoding="utf-8")
    return root


@pytest.fixture(name="project")
def project_fixture(session, project_dir) -> Project:
    """テスト用のプロジェクトを登録"""
    project = Project(
        project_id="ecommerce",
        name="E-Commerce API",
        path=str(project_dir),
        base_url="http://localhost:8080",
    )
    session.add(project)
    session.commit()
    session.refresh(project)
    return project


@pytest.fixture(autouse=True)
def clear_events():
    """イベント履歴をテストごとに空にする"""
    from app.services.events import event_emitter
    event_emitter.clear()
    yield
    event_emitter.clear()


@pytest.fixture(scope="session", autouse=True)
def cleanup_test_dirs():
    """テスト終了時に一時ディレクトリをクリーンアップする"""
    yield
    import shutil
    shutil.rmtree(TEST_BASE_DIR, ignore_errors=True)


def cucumber_report(scenarios, feature="Product API"):
    """
    (名前, タグ, ステータス, エラーメッセージ) の一覧から cucumber-js 形式のレポートを作る
    """
    elements = []
    for index, (name, tags, status, error) in enumerate(scenarios):
        result = {"status": status, "duration": 2_000_000}
        if error:
            result["error_message"] = error
        elements.append({
            "type": "scenario",
            "id": f"scenario-{index}",
            "name": name,
            "line": index * 5 + 3,
            "tags": [{"name": tag} for tag in tags],
            "steps": [
                {"keyword": "Before", "result": {"status": "passed", "duration": 1_000_000}},
                {"keyword": "When ", "name": "I send a POST request to \"/products\"", "result": {"status": "passed", "duration": 3_000_000}},
                {"keyword": "Then ", "name": "the response status should be 201", "result": result},
            ],
        })
    return [{"name": feature, "tags": [], "elements": elements}]


@pytest.fixture(name="report_runner")
def report_runner_fixture():
    """サブプロセスを起動せずにレポートを書き出すランナーを作る"""
    import json
    from app.exceptions import RunnerProcessException
    from app.services.test import CucumberRunner, RunResult

    class ReportRunner(CucumberRunner):
        def __init__(self, report, exit_code=0):
            super().__init__()
            self.report = report
            self.exit_code = exit_code
            self.contexts = []

        async def run(self, context):
            self.contexts.append(context)
            if self.report is not None:
                self.paths.write_text(self.paths.get_report_path(context.project_path), json.dumps(self.report))
            if self.exit_code != 0:
                raise RunnerProcessException(
                    f"Command failed with code {self.exit_code}: ",
                    details={"exit_code": self.exit_code, "execution_id": context.execution_id}
                )
            return RunResult(exit_code=0)

    def factory(report, exit_code=0):
        return ReportRunner(report, exit_code)

    return factory


@pytest.fixture(name="make_report")
def make_report_fixture():
    return cucumber_report
