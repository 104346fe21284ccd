"""
タイムアウト処理のユーティリティモジュール

非同期処理にタイムアウトを設定します。設定値は環境変数・設定ファイル・settingsの順に解決し、
タイムアウト発生時は TimeoutException を送出します。
"""

import asyncio
import os
from typing import Any, Awaitable, Optional

from app.config import settings, get_config
from app.exceptions import TimeoutException
from app.logging_config import logger


def get_timeout_config(timeout_key: str, default: Optional[float] = None) -> float:
    """
    特定のタイムアウト値（秒）を取得する

    Args:
        timeout_key: タイムアウト設定のキー（例: "RUNNER_PROCESS"）
        default: デフォルト値（None の場合は TIMEOUT_DEFAULT）

    Returns:
        タイムアウト値（秒）
    """
    env_name = f"TIMEOUT_{timeout_key.upper()}"
    env_value = os.environ.get(env_name)
    if env_value:
        try:
            return float(env_value)
        except ValueError:
            logger.warning(f"Invalid timeout value in environment variable {env_name}: {env_value}")

    config = get_config()
    value = getattr(config.timeout, timeout_key.upper(), None)
    if value is not None:
        return float(config.get(value))

    if hasattr(settings, env_name):
        return float(getattr(settings, env_name))

    if default is None:
        return float(config.get(config.timeout.DEFAULT))
    return default


async def run_async_with_timeout(awaitable: Awaitable[Any], timeout_value: float, name: str = "operation") -> Any:
    """
    awaitable を指定したタイムアウトで待機する

    Raises:
        TimeoutException: タイムアウトが発生した場合
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_value)
    except asyncio.TimeoutError:
        raise TimeoutException(
            f"{name} timed out after {timeout_value} seconds",
            details={"function": name, "timeout": timeout_value}
        )
