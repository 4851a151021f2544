"""Server-Sent Events (SSE) routes for real-time execution streaming."""

from __future__ import annotations

import json
from typing import Annotated, Any, AsyncGenerator

from fastapi import APIRouter, Depends, Request
from sse_starlette.sse import EventSourceResponse

from ..core.dependencies import get_push_service
from ..engine.serialization import to_jsonable
from ..engine.types import ExecutionEvent, ExecutionEventType, ExecutionItem
from ..services.push_service import PushService

router = APIRouter()

PushServiceDep = Annotated[PushService, Depends(get_push_service)]

_FINAL_EVENTS = (
    ExecutionEventType.EXECUTION_COMPLETE,
    ExecutionEventType.EXECUTION_ERROR,
    ExecutionEventType.EXECUTION_WAITING,
)


def _event_to_dict(event: ExecutionEvent) -> dict[str, Any]:
    """Convert ExecutionEvent to dict for SSE."""
    result: dict[str, Any] = {
        "type": event.type.value,
        "executionId": event.execution_id,
        "timestamp": event.timestamp.isoformat(),
    }

    if event.node_name:
        result["nodeName"] = event.node_name
    if event.data:
        result["data"] = to_jsonable(event.data, list[ExecutionItem])
    if event.error:
        result["error"] = event.error
    if event.payload is not None:
        result["payload"] = event.payload

    return result


@router.get("/executions/{execution_id}/stream")
async def stream_execution(
    execution_id: str,
    request: Request,
    push: PushServiceDep,
) -> EventSourceResponse:
    """Stream the lifecycle events of one execution until it ends or parks."""
    queue = push.subscribe(execution_id)

    async def event_generator() -> AsyncGenerator[str, None]:
        try:
            while True:
                if await request.is_disconnected():
                    break
                event = await queue.get()
                yield json.dumps(_event_to_dict(event), default=str)
                if event.type in _FINAL_EVENTS:
                    break
        finally:
            push.unsubscribe(execution_id, queue)

    return EventSourceResponse(event_generator())
