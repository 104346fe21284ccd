"""
BDDランナー実行モジュール

cucumber-js のコマンドライン・環境変数を組み立て、サブプロセスとして実行します。
実行ごとの状態は ExecutionContext に保持し、フックには常にコンテキストを渡します。
"""

import asyncio
import os
import re
import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from app.config import get_config
from app.exceptions import RunnerProcessException, TimeoutException
from app.logging_config import logger
from app.utils.path_manager import PathManager, path_manager
from app.utils.timeout import get_timeout_config, run_async_with_timeout

SCENARIO_PASSED_RE = re.compile(r"^✅\s+Scenario:\s*(.+)$")
SCENARIO_FAILED_RE = re.compile(r"^❌\s+Scenario:\s*(.+)$")


class ScenarioStatus(str, Enum):
    """シナリオ・ステップの実行結果"""
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


class RunOptions(BaseModel):
    """1回の実行に渡すフィルタとランナー設定"""
    entity: Optional[str] = None
    section: Optional[str] = None
    method: Optional[str] = None
    test_type: str = "all"
    tags: List[str] = Field(default_factory=list)
    specific_scenario: Optional[str] = None
    environment: str = "local"
    parallel: bool = False
    workers: int = 1
    timeout: int = 30000
    retries: int = 0
    verbose: bool = False
    save_logs: bool = True
    save_payloads: bool = False
    test_suite_id: Optional[str] = None

    def scenario_names(self) -> List[str]:
        if not self.specific_scenario:
            return []
        return [name.strip() for name in self.specific_scenario.split(",") if name.strip()]


class RunResult(BaseModel):
    """サブプロセスの終了情報"""
    exit_code: int
    stdout_lines: List[str] = Field(default_factory=list)
    stderr: str = ""
    duration_ms: float = 0


class ExecutionContext:
    """
    1回の実行の状態

    プロセス全体で共有する「実行中の実行」は持たず、このオブジェクトを各フック・処理に渡す。
    completion は実行完了時にサマリー辞書で解決される。
    """

    def __init__(
        self,
        project_id: str,
        project_path: str,
        options: RunOptions,
        execution_id: Optional[str] = None,
        base_url: Optional[str] = None,
    ):
        self.execution_id = execution_id or str(uuid.uuid4())
        self.project_id = project_id
        self.project_path = project_path
        self.base_url = base_url
        self.options = options
        self.status = "pending"
        self.started_at: Optional[datetime] = None
        self.completed_at: Optional[datetime] = None
        self.logs: List[str] = []
        self.passed_scenarios: List[str] = []
        self.failed_scenarios: List[str] = []
        self.completion: Optional[asyncio.Future] = None

    def bind_loop(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> asyncio.Future:
        """完了通知用の Future を現在のイベントループに作成する"""
        if self.completion is None:
            loop = loop or asyncio.get_running_loop()
            self.completion = loop.create_future()
        return self.completion

    def mark_started(self) -> None:
        self.status = "running"
        self.started_at = datetime.now(timezone.utc)

    def mark_finished(self, status: str) -> None:
        self.status = status
        self.completed_at = datetime.now(timezone.utc)

    def resolve(self, summary: Dict[str, Any]) -> None:
        if self.completion is not None and not self.completion.done():
            self.completion.set_result(summary)

    def log(self, line: str) -> None:
        self.logs.append(line)


class CucumberRunner:
    """cucumber-js をサブプロセスとして実行するランナー"""

    def __init__(self, paths: PathManager = path_manager):
        self.paths = paths
        self._config = get_config()
        self._before_run_hooks: List[Callable] = []
        self._after_run_hooks: List[Callable] = []
        self._output_hooks: List[Callable] = []

    def add_before_run_hook(self, hook: Callable[[ExecutionContext], Any]) -> None:
        self._before_run_hooks.append(hook)

    def add_after_run_hook(self, hook: Callable[[ExecutionContext, RunResult], Any]) -> None:
        self._after_run_hooks.append(hook)

    def add_output_hook(self, hook: Callable[[ExecutionContext, str, str], Any]) -> None:
        """シナリオ結果行（✅/❌）ごとに呼ばれるフックを追加する"""
        self._output_hooks.append(hook)

    async def _run_hooks(self, hooks: List[Callable], label: str, *args: Any) -> None:
        for hook in hooks:
            try:
                if asyncio.iscoroutinefunction(hook):
                    await hook(*args)
                else:
                    hook(*args)
            except Exception as e:
                logger.error(f"Error in {label} hook: {e}", exc_info=True)

    def build_command(self, options: RunOptions) -> List[str]:
        """
        ランナーのコマンドラインを組み立てる

        Args:
            options: 実行オプション

        Returns:
            引数リスト（シェルを経由しないため引用符は付けない）
        """
        config = self._config
        command = list(config.get(config.runner.COMMAND))

        if options.entity and options.section:
            features_dir = config.get(config.paths.FEATURES_DIR)
            command.append(f"{features_dir}/{options.section}/{options.entity.lower()}.feature")

        for module in config.get(config.runner.REQUIRE_MODULES):
            command.extend(["--require-module", module])
        for require_path in config.get(config.runner.REQUIRE_PATHS):
            command.extend(["--require", require_path])

        for tag in options.tags:
            command.extend(["--tags", tag])
        # --name は正規表現として解釈される
        for name in options.scenario_names():
            command.extend(["--name", re.escape(name)])

        if options.retries and options.retries > 0:
            command.extend(["--retry", str(options.retries)])

        command.extend(["--format", config.get(config.runner.FORMATTER)])
        command.extend(["--format", f"json:{self.paths.get_report_relative_path()}"])

        if options.parallel and options.workers > 1:
            command.extend(["--parallel", str(options.workers)])

        return command

    def build_env(self, context: ExecutionContext) -> Dict[str, str]:
        """ステップコードが参照する環境変数を組み立てる"""
        options = context.options
        env = dict(os.environ)
        env.update({
            "TEST_ENTITY": options.entity or "",
            "TEST_METHOD": options.method or "",
            "TEST_TYPE": options.test_type,
            "TEST_TAGS": ",".join(options.tags),
            "TEST_SCENARIO": options.specific_scenario or "",
            "TEST_ENVIRONMENT": options.environment,
            "TEST_VERBOSE": str(options.verbose).lower(),
            "TEST_SAVE_LOGS": str(options.save_logs).lower(),
            "TEST_SAVE_PAYLOADS": str(options.save_payloads).lower(),
            "TEST_TIMEOUT": str(options.timeout),
            "TEST_RETRIES": str(options.retries),
            "WORKERS": str(options.workers) if options.parallel and options.workers else "1",
            "CI": "false",
            "TEST_EXECUTION_ID": context.execution_id,
        })
        if context.base_url:
            env["BASE_URL"] = context.base_url
        return env

    async def _handle_output(self, context: ExecutionContext, line: str) -> None:
        context.log(line)
        passed = SCENARIO_PASSED_RE.match(line)
        if passed:
            name = passed.group(1).strip()
            context.passed_scenarios.append(name)
            logger.info(f"[{context.execution_id}] PASSED: {name}")
            await self._run_hooks(self._output_hooks, "output", context, "passed", name)
            return
        failed = SCENARIO_FAILED_RE.match(line)
        if failed:
            name = failed.group(1).strip()
            context.failed_scenarios.append(name)
            logger.info(f"[{context.execution_id}] FAILED: {name}")
            await self._run_hooks(self._output_hooks, "output", context, "failed", name)

    async def _consume(self, process: asyncio.subprocess.Process, context: ExecutionContext) -> RunResult:
        stderr_task = asyncio.ensure_future(process.stderr.read())
        lines: List[str] = []
        try:
            async for raw in process.stdout:
                line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                lines.append(line)
                await self._handle_output(context, line)
            stderr = (await stderr_task).decode("utf-8", errors="replace")
        finally:
            # タイムアウトでキャンセルされた場合も stderr の読み込みを残さない
            if not stderr_task.done():
                stderr_task.cancel()
                await asyncio.gather(stderr_task, return_exceptions=True)
        exit_code = await process.wait()
        return RunResult(exit_code=exit_code, stdout_lines=lines, stderr=stderr)

    async def run(self, context: ExecutionContext) -> RunResult:
        """
        ランナーを実行して終了を待つ

        Args:
            context: 実行コンテキスト

        Returns:
            RunResult（終了コード 0 の場合のみ）

        Raises:
            RunnerProcessException: 終了コードが 0 以外、または起動に失敗した場合
            TimeoutException: RUNNER_PROCESS のタイムアウトを超えた場合
        """
        project_dir = self.paths.get_project_path(context.project_path)
        report_path = self.paths.get_report_path(context.project_path)
        if self.paths.remove(report_path):
            logger.debug(f"Removed stale report {report_path}")
        self.paths.ensure_file_dir(report_path)

        command = self.build_command(context.options)
        env = self.build_env(context)
        logger.info(f"[{context.execution_id}] Running: {' '.join(command)} (cwd={project_dir})")

        await self._run_hooks(self._before_run_hooks, "before run", context)

        started = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(project_dir),
                env=env,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise RunnerProcessException(
                f"Error executing command: {e}",
                details={"command": command, "execution_id": context.execution_id}
            )

        timeout_value = get_timeout_config("RUNNER_PROCESS")
        try:
            result = await run_async_with_timeout(self._consume(process, context), timeout_value, "runner process")
        except TimeoutException:
            if process.returncode is None:
                process.kill()
                await process.wait()
            logger.error(f"[{context.execution_id}] Runner exceeded {timeout_value}s and was killed")
            raise
        result.duration_ms = round((time.monotonic() - started) * 1000, 2)

        await self._run_hooks(self._after_run_hooks, "after run", context, result)

        if result.exit_code != 0:
            raise RunnerProcessException(
                f"Command failed with code {result.exit_code}: {result.stderr}",
                details={"exit_code": result.exit_code, "execution_id": context.execution_id}
            )
        logger.info(f"[{context.execution_id}] Runner finished in {result.duration_ms}ms")
        return result
