"""Registry of the executions currently running in this process or its workers."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from ..engine.types import utc_now

if TYPE_CHECKING:
    from ..engine.types import ExecutionMode, ExecutionState
    from ..engine.workflow import Workflow
    from ..engine.workflow_execute import WorkflowExecute

logger = logging.getLogger(__name__)


@dataclass
class ActiveExecution:
    execution_id: str
    workflow: Workflow
    mode: ExecutionMode
    started_at: datetime = field(default_factory=utc_now)
    task: asyncio.Task | None = None
    process: asyncio.subprocess.Process | None = None
    workflow_execute: WorkflowExecute | None = None
    response_future: asyncio.Future | None = None
    post_execute_futures: list[asyncio.Future] = field(default_factory=list)


class ActiveExecutions:
    """Tracks running executions and lets callers wait for their result."""

    def __init__(self) -> None:
        self._executions: dict[str, ActiveExecution] = {}

    def add(
        self,
        execution_id: str,
        workflow: Workflow,
        mode: ExecutionMode,
        response_future: asyncio.Future | None = None,
    ) -> ActiveExecution:
        execution = ActiveExecution(
            execution_id=execution_id,
            workflow=workflow,
            mode=mode,
            response_future=response_future,
        )
        self._executions[execution_id] = execution
        return execution

    def get(self, execution_id: str) -> ActiveExecution | None:
        return self._executions.get(execution_id)

    def is_active(self, execution_id: str) -> bool:
        return execution_id in self._executions

    def get_active_ids(self) -> list[str]:
        return list(self._executions)

    def attach_task(self, execution_id: str, task: asyncio.Task) -> None:
        if execution_id in self._executions:
            self._executions[execution_id].task = task

    def attach_process(self, execution_id: str, process: asyncio.subprocess.Process) -> None:
        if execution_id in self._executions:
            self._executions[execution_id].process = process

    def attach_workflow_execute(self, execution_id: str, workflow_execute: WorkflowExecute) -> None:
        if execution_id in self._executions:
            self._executions[execution_id].workflow_execute = workflow_execute

    def resolve_response(self, execution_id: str, response: dict[str, Any]) -> None:
        """Hand a webhook response to the waiting request, once."""
        execution = self._executions.get(execution_id)
        if execution is None or execution.response_future is None:
            return
        if not execution.response_future.done():
            execution.response_future.set_result(response)

    def get_post_execute_future(self, execution_id: str) -> asyncio.Future:
        """Future resolved with the final ExecutionState (``None`` if unknown)."""
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        execution = self._executions.get(execution_id)
        if execution is None:
            future.set_result(None)
        else:
            execution.post_execute_futures.append(future)
        return future

    def remove(self, execution_id: str, full_run_data: ExecutionState | None = None) -> None:
        """Drop a finished execution and wake everyone waiting for it."""
        execution = self._executions.pop(execution_id, None)
        if execution is None:
            return

        for future in execution.post_execute_futures:
            if not future.done():
                future.set_result(full_run_data)
        if execution.response_future is not None and not execution.response_future.done():
            execution.response_future.set_result(None)
        logger.debug("Execution %s removed from active executions", execution_id)
