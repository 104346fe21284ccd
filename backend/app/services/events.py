"""
実行ライフサイクルイベント（started / progress / completed / failed）の発行
"""

import asyncio
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Optional

from app.config import get_config
from app.logging_config import logger

EVENT_TYPES = ("started", "progress", "completed", "failed")


class ExecutionEventEmitter:
    """プロセス内のイベント購読ハブ"""

    def __init__(self, history_size: Optional[int] = None):
        if history_size is None:
            config = get_config()
            history_size = config.get(config.events.HISTORY_SIZE)
        self._subscribers: List[Callable] = []
        self._history: Deque[Dict[str, Any]] = deque(maxlen=history_size)

    def subscribe(self, callback: Callable[[Dict[str, Any]], Any]) -> Callable[[], None]:
        """
        イベントを購読する

        Args:
            callback: イベント辞書を受け取る関数（同期・非同期どちらでも可）

        Returns:
            購読を解除する関数
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def emit(self, event_type: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        イベントを発行する。購読側のエラーはログに記録して無視する

        Args:
            event_type: started / progress / completed / failed
            payload: イベントの内容（execution_id 等）

        Returns:
            発行したイベント
        """
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {event_type}")
        event = {
            "type": event_type,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **payload,
        }
        self._history.append(event)
        logger.debug(f"Emitting {event_type} event for execution {payload.get('execution_id')}")

        for callback in list(self._subscribers):
            try:
                if asyncio.iscoroutinefunction(callback):
                    await callback(event)
                else:
                    callback(event)
            except Exception as e:
                logger.error(f"Error in event subscriber for {event_type}: {e}", exc_info=True)
        return event

    def recent_events(self, limit: int = 50, execution_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """直近のイベントを新しい順に返す"""
        events = [e for e in reversed(self._history) if execution_id is None or e.get("execution_id") == execution_id]
        return events[:limit]

    def clear(self) -> None:
        self._history.clear()


event_emitter = ExecutionEventEmitter()
