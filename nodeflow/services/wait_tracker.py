"""
Resumes executions parked by a Wait node.

The database is polled periodically for executions due within the lookahead
window; each one gets an in-memory timer that resumes it when it is due.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from ..core.config import settings
from ..core.exceptions import ExecutionNotFoundError, WorkflowCanceledError
from ..engine.execution_payload import WorkflowExecutionPayload
from ..engine.types import ExecutionError, ExecutionState, ExecutionStatus
from ..repositories import ExecutionRepository

if TYPE_CHECKING:
    from sqlalchemy.orm import sessionmaker

    from .workflow_runner import WorkflowRunner

logger = logging.getLogger(__name__)


class WaitTracker:
    """Keeps one timer per waiting execution that is due soon."""

    def __init__(
        self,
        runner: WorkflowRunner,
        session_factory: sessionmaker | None = None,
        poll_interval: float | None = None,
        lookahead: float | None = None,
    ) -> None:
        self.runner = runner
        self.session_factory = session_factory or runner.session_factory
        self.poll_interval = poll_interval if poll_interval is not None else settings.wait_poll_interval
        self.lookahead = lookahead if lookahead is not None else settings.wait_lookahead

        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._lock = asyncio.Lock()
        self._poll_task: asyncio.Task | None = None
        self._resume_tasks: set[asyncio.Task] = set()

    @property
    def scheduled_ids(self) -> list[str]:
        return list(self._timers)

    def start(self) -> None:
        if self._poll_task is None:
            self._poll_task = asyncio.create_task(self._poll_loop())
            logger.info("Wait tracker started (poll every %ss)", self.poll_interval)

    async def stop(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None
        async with self._lock:
            for handle in self._timers.values():
                handle.cancel()
            self._timers.clear()

    async def _poll_loop(self) -> None:
        while True:
            try:
                await self.get_waiting_executions()
            except Exception:
                logger.exception("Could not load waiting executions")
            await asyncio.sleep(self.poll_interval)

    async def get_waiting_executions(self) -> None:
        """Schedule every waiting execution due within the lookahead window."""
        until = datetime.now(timezone.utc) + timedelta(seconds=self.lookahead)
        async with self.session_factory() as session:
            records = await ExecutionRepository(session).find_waiting(until)

        if not records:
            return

        loop = asyncio.get_running_loop()
        async with self._lock:
            for record in records:
                if record.id in self._timers or record.state.wait_till is None:
                    continue
                if self.runner.active_executions.is_active(record.id):
                    continue
                remaining = record.state.wait_till - datetime.now(timezone.utc)
                delay = max(remaining.total_seconds(), 0)
                self._timers[record.id] = loop.call_later(delay, self._on_timer, record.id)
                logger.debug("Execution %s resumes in %.1fs", record.id, delay)

    def _on_timer(self, execution_id: str) -> None:
        task = asyncio.get_running_loop().create_task(self.start_execution(execution_id))
        self._resume_tasks.add(task)
        task.add_done_callback(self._resume_tasks.discard)

    async def start_execution(self, execution_id: str) -> str | None:
        """Resume one waiting execution now."""
        async with self._lock:
            self._timers.pop(execution_id, None)

        async with self.session_factory() as session:
            record = await ExecutionRepository(session).get(execution_id)

        if record is None:
            logger.warning("Waiting execution %s no longer exists", execution_id)
            return None
        if self.runner.active_executions.is_active(execution_id):
            return None
        if record.state.finished or record.state.status != ExecutionStatus.WAITING:
            logger.info("Execution %s is not waiting anymore, skipping", execution_id)
            return None

        logger.info("Resuming execution %s", execution_id)
        payload = WorkflowExecutionPayload(
            workflow=record.workflow_data,
            mode=record.state.mode,
            execution_data=record.state.data,
        )
        try:
            return await self.runner.run(payload, execution_id=execution_id)
        except Exception:
            logger.exception("Could not resume execution %s", execution_id)
            return None

    async def stop_execution(self, execution_id: str) -> ExecutionState:
        """Cancel a waiting execution; its timer (if any) is dropped."""
        async with self._lock:
            handle = self._timers.pop(execution_id, None)
            if handle is not None:
                handle.cancel()

        async with self.session_factory() as session:
            repo = ExecutionRepository(session, settings.max_execution_records)
            record = await repo.get(execution_id)
            if record is None:
                raise ExecutionNotFoundError(execution_id)
            state = record.state
            if state.status != ExecutionStatus.WAITING:
                raise ExecutionNotFoundError(
                    execution_id,
                    f'The execution ID "{execution_id}" could not be found or is not waiting.',
                )

            state.data.result_data.error = ExecutionError.from_exception(WorkflowCanceledError())
            state.data.wait_till = None
            state.wait_till = None
            state.transition(ExecutionStatus.CANCELED)
            state.stopped_at = datetime.now(timezone.utc)
            await repo.update(execution_id, state)

        logger.info("Waiting execution %s canceled", execution_id)
        return state
