import asyncio
import re
import pytest
from app.exceptions import RunnerProcessException, TimeoutException
from app.services.test import CucumberRunner, ExecutionContext, RunOptions


class FakeStream:
    def __init__(self, lines):
        self._lines = [line.encode("utf-8") for line in lines]

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._lines:
            raise StopAsyncIteration
        return self._lines.pop(0)

    async def read(self):
        data = b"".join(self._lines)
        self._lines = []
        return data


class HangingStream:
    """終了しない stdout/stderr"""

    def __init__(self):
        self.cancelled = False

    def __aiter__(self):
        return self

    async def __anext__(self):
        await asyncio.Event().wait()

    async def read(self):
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise


class FakeProcess:
    def __init__(self, stdout_lines, stderr="", exit_code=0):
        self.stdout = FakeStream(stdout_lines)
        self.stderr = FakeStream([stderr] if stderr else [])
        self._exit_code = exit_code
        self.returncode = None
        self.killed = False
        self.waited = False

    async def wait(self):
        self.waited = True
        self.returncode = self._exit_code
        return self._exit_code

    def kill(self):
        self.killed = True


@pytest.fixture
def context(project_dir):
    options = RunOptions(entity="Product", section="ecom", tags=["@smoke"], verbose=True)
    return ExecutionContext("ecommerce", str(project_dir), options, base_url="http://localhost:8080")


def test_build_command_includes_filters_in_order():
    """featureファイル・require・タグ・名前・retry・フォーマット・並列数の順で組み立てられること"""
    options = RunOptions(
        entity="Product",
        section="ecom",
        tags=["@smoke", "@create"],
        specific_scenario="Create a new product (v2), Get product",
        retries=2,
        parallel=True,
        workers=3,
    )

    command = CucumberRunner().build_command(options)

    assert command[:3] == ["npx", "cucumber-js", "src/features/ecom/product.feature"]
    assert command[3:5] == ["--require-module", "ts-node/register"]
    assert ["--tags", "@smoke"] == command[command.index("--tags"):command.index("--tags") + 2]
    names = [command[i + 1] for i, arg in enumerate(command) if arg == "--name"]
    assert names == [re.escape("Create a new product (v2)"), re.escape("Get product")]
    assert command[command.index("--retry") + 1] == "2"
    assert "json:test-results/cucumber-report.json" in command
    assert command[-2:] == ["--parallel", "3"]


def test_build_command_without_entity_runs_everything():
    command = CucumberRunner().build_command(RunOptions())

    assert not any(arg.endswith(".feature") for arg in command)
    assert "--retry" not in command
    assert "--parallel" not in command
    assert "--name" not in command


def test_build_env(context):
    """ステップコードが参照する環境変数が設定されること"""
    env = CucumberRunner().build_env(context)

    assert env["TEST_ENTITY"] == "Product"
    assert env["TEST_TAGS"] == "@smoke"
    assert env["TEST_VERBOSE"] == "true"
    assert env["TEST_SAVE_PAYLOADS"] == "false"
    assert env["TEST_TIMEOUT"] == "30000"
    assert env["WORKERS"] == "1"
    assert env["CI"] == "false"
    assert env["TEST_EXECUTION_ID"] == context.execution_id
    assert env["BASE_URL"] == "http://localhost:8080"


@pytest.mark.asyncio
async def test_run_collects_scenario_lines_and_calls_hooks(context, project_dir, monkeypatch):
    """✅/❌ 行がコンテキストに記録され、フックにコンテキストが渡されること"""
    report = project_dir / "test-results" / "cucumber-report.json"
    report.parent.mkdir(parents=True)
    report.write_text("stale", encoding="utf-8")
    captured = {}

    async def fake_exec(*command, cwd, env, stdout, stderr):
        captured.update(command=command, cwd=cwd, env=env)
        return FakeProcess(["Feature: Product\n", "✅ Scenario: Create a new product\n", "❌ Scenario: Get product with invalid id\n"])

    monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_exec)

    runner = CucumberRunner()
    outputs = []
    before = []

    async def on_output(ctx, status, name):
        outputs.append((ctx.execution_id, status, name))

    runner.add_output_hook(on_output)
    runner.add_before_run_hook(lambda ctx: before.append(ctx.execution_id))

    result = await runner.run(context)

    assert result.exit_code == 0
    assert not report.exists()
    assert captured["cwd"] == str(project_dir)
    assert captured["env"]["TEST_EXECUTION_ID"] == context.execution_id
    assert context.passed_scenarios == ["Create a new product"]
    assert context.failed_scenarios == ["Get product with invalid id"]
    assert outputs == [
        (context.execution_id, "passed", "Create a new product"),
        (context.execution_id, "failed", "Get product with invalid id"),
    ]
    assert before == [context.execution_id]
    assert len(context.logs) == 3


@pytest.mark.asyncio
async def test_run_raises_on_non_zero_exit(context, monkeypatch):
    async def fake_exec(*command, **kwargs):
        return FakeProcess(["❌ Scenario: Broken\n"], stderr="1 scenario failed", exit_code=1)

    monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_exec)

    with pytest.raises(RunnerProcessException) as exc_info:
        await CucumberRunner().run(context)

    assert exc_info.value.message == "Command failed with code 1: 1 scenario failed"
    assert context.failed_scenarios == ["Broken"]


@pytest.mark.asyncio
async def test_run_wraps_spawn_errors(context, monkeypatch):
    async def fake_exec(*command, **kwargs):
        raise FileNotFoundError("npx")

    monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_exec)

    with pytest.raises(RunnerProcessException) as exc_info:
        await CucumberRunner().run(context)

    assert exc_info.value.message.startswith("Error executing command:")


@pytest.mark.asyncio
async def test_run_kills_process_on_timeout(context, monkeypatch):
    process = FakeProcess([])

    async def fake_exec(*command, **kwargs):
        return process

    async def slow_consume(self, process, context):
        await asyncio.sleep(1)

    monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_exec)
    monkeypatch.setattr(CucumberRunner, "_consume", slow_consume)
    monkeypatch.setenv("TIMEOUT_RUNNER_PROCESS", "0.01")

    with pytest.raises(TimeoutException):
        await CucumberRunner().run(context)

    assert process.killed


@pytest.mark.asyncio
async def test_timeout_cancels_stderr_reader_and_reaps_process(context, monkeypatch):
    """タイムアウト時は stderr の読み込みをキャンセルし、kill したプロセスの終了を待つこと"""
    process = FakeProcess([])
    process.stdout = HangingStream()
    process.stderr = HangingStream()

    async def fake_exec(*command, **kwargs):
        return process

    monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_exec)
    monkeypatch.setenv("TIMEOUT_RUNNER_PROCESS", "0.01")

    with pytest.raises(TimeoutException):
        await CucumberRunner().run(context)

    assert process.stderr.cancelled
    assert process.killed
    assert process.waited
