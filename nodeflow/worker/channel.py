"""
Newline-delimited JSON messages between the coordinator and a worker.

Every message is ``{"type": ..., "data": {...}}`` on a single line.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
import uuid
from typing import Any, TextIO

from ..core.exceptions import TransportError

logger = logging.getLogger(__name__)

# Lines can carry full run data
MAX_MESSAGE_SIZE = 64 * 1024 * 1024

# Coordinator -> worker
START_WORKFLOW = "startWorkflow"
EXECUTION_ID = "executionId"
STOP_EXECUTION = "stopExecution"
TIMEOUT = "timeout"

# Worker -> coordinator
START = "start"
PROCESS_HOOK = "processHook"
SEND_RESPONSE = "sendResponse"
SEND_DATA_TO_UI = "sendDataToUI"
START_EXECUTION = "startExecution"
FINISH_EXECUTION = "finishExecution"
PROCESS_ERROR = "processError"
END = "end"


def encode_message(message_type: str, data: dict[str, Any] | None = None) -> bytes:
    return (json.dumps({"type": message_type, "data": data or {}}, default=str) + "\n").encode()


def decode_message(line: bytes | str) -> dict[str, Any]:
    message = json.loads(line)
    if not isinstance(message, dict) or "type" not in message:
        raise ValueError(f"Malformed message: {str(line)[:200]}")
    message.setdefault("data", {})
    return message


class StdioChannel:
    """Worker end of the channel: reads stdin, writes the original stdout."""

    def __init__(self, output: TextIO | None = None) -> None:
        self._output = output or sys.stdout
        self._reader: asyncio.StreamReader | None = None

    async def connect(self, stdin: TextIO | None = None) -> None:
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader(limit=MAX_MESSAGE_SIZE)
        await loop.connect_read_pipe(
            lambda: asyncio.StreamReaderProtocol(reader), stdin or sys.stdin
        )
        self._reader = reader

    async def receive(self) -> dict[str, Any] | None:
        """Next message, or ``None`` once the coordinator closed the pipe."""
        assert self._reader is not None, "connect() first"
        while True:
            line = await self._reader.readline()
            if not line:
                return None
            if line.strip():
                return decode_message(line)

    async def send(self, message_type: str, data: dict[str, Any] | None = None) -> None:
        try:
            self._output.write(encode_message(message_type, data).decode())
            self._output.flush()
        except (OSError, ValueError, TypeError) as e:
            raise TransportError(message_type, str(e)) from e


class ExecutionIdCorrelation:
    """
    Pending requests for nested executions, keyed by a generated request id.

    Each request resolves exactly once with the coordinator's reply.
    """

    def __init__(self) -> None:
        self._pending: dict[str, asyncio.Future[dict[str, Any]]] = {}

    def register(self) -> tuple[str, asyncio.Future[dict[str, Any]]]:
        request_id = uuid.uuid4().hex
        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        return request_id, future

    def resolve(self, request_id: str, reply: dict[str, Any]) -> bool:
        future = self._pending.pop(request_id, None)
        if future is None or future.done():
            logger.warning("No pending request %s for execution id reply", request_id)
            return False
        future.set_result(reply)
        return True

    def discard(self, request_id: str) -> None:
        self._pending.pop(request_id, None)

    def cancel_all(self) -> None:
        for future in self._pending.values():
            if not future.done():
                future.cancel()
        self._pending.clear()
