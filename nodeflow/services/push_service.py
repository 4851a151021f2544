"""Fan-out of execution events to SSE subscribers."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from ..engine.types import ExecutionEvent, ExecutionEventType

logger = logging.getLogger(__name__)


class PushService:
    """Per-execution queues of ``ExecutionEvent``s for live streaming."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[asyncio.Queue[ExecutionEvent]]] = {}

    def subscribe(self, execution_id: str) -> asyncio.Queue[ExecutionEvent]:
        queue: asyncio.Queue[ExecutionEvent] = asyncio.Queue()
        self._subscribers.setdefault(execution_id, []).append(queue)
        return queue

    def unsubscribe(self, execution_id: str, queue: asyncio.Queue[ExecutionEvent]) -> None:
        queues = self._subscribers.get(execution_id, [])
        if queue in queues:
            queues.remove(queue)
        if not queues:
            self._subscribers.pop(execution_id, None)

    def send(self, event: ExecutionEvent) -> None:
        for queue in self._subscribers.get(event.execution_id, []):
            queue.put_nowait(event)

    def send_to_ui(self, execution_id: str, message_type: str, data: Any) -> None:
        """Live preview data of a manual run."""
        self.send(
            ExecutionEvent(
                type=ExecutionEventType.UI_MESSAGE,
                execution_id=execution_id,
                timestamp=datetime.now(timezone.utc),
                payload={"type": message_type, "data": data},
            )
        )
