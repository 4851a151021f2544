"""
Coordinator-side lifecycle hooks: persistence, live push and webhook responses.

Persistence handlers are registered before push handlers so a UI that reacts
to an event can already read the stored state.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from ..core.config import settings
from ..engine.hooks import WorkflowHooks
from ..engine.types import (
    ExecutionEvent,
    ExecutionEventType,
    ExecutionState,
    ExecutionStatus,
    RunExecutionData,
    TaskData,
)
from ..repositories import ExecutionRepository, WorkflowRepository

if TYPE_CHECKING:
    from sqlalchemy.orm import sessionmaker

    from ..engine.types import ExecutionMode
    from ..engine.workflow import Workflow
    from .active_executions import ActiveExecutions
    from .push_service import PushService

logger = logging.getLogger(__name__)


def hook_functions_save(
    execution_id: str,
    workflow: Workflow,
    session_factory: sessionmaker,
) -> dict[str, list[Any]]:
    """Persist progress (optional) and the final state of a run."""

    async def node_execute_after(
        node_name: str, task_data: TaskData, run_execution_data: RunExecutionData
    ) -> None:
        save_progress = workflow.settings.save_execution_progress
        if save_progress is None:
            save_progress = settings.save_execution_progress
        if not save_progress:
            return

        async with session_factory() as session:
            repo = ExecutionRepository(session, settings.max_execution_records)
            record = await repo.get(execution_id)
            if record is None:
                return
            state = record.state
            state.data = run_execution_data
            if state.status != ExecutionStatus.RUNNING:
                state.status = ExecutionStatus.RUNNING
            await repo.update(execution_id, state)
        logger.debug('Saved progress of execution %s after node "%s"', execution_id, node_name)

    async def workflow_execute_after(
        full_run_data: ExecutionState, new_static_data: dict[str, Any] | None
    ) -> None:
        async with session_factory() as session:
            if new_static_data is not None and workflow.id:
                await WorkflowRepository(session).update_static_data(workflow.id, new_static_data)

            repo = ExecutionRepository(session, settings.max_execution_records)
            await repo.update(execution_id, full_run_data)
        logger.info(
            "Execution %s of workflow %s finished with status %s",
            execution_id,
            workflow.id,
            full_run_data.status.value,
        )

    return {
        "nodeExecuteAfter": [node_execute_after],
        "workflowExecuteAfter": [workflow_execute_after],
    }


def hook_functions_push(execution_id: str, push: PushService) -> dict[str, list[Any]]:
    """Turn lifecycle events into ``ExecutionEvent``s for SSE subscribers."""

    def node_execute_before(node_name: str) -> None:
        push.send(
            ExecutionEvent(
                type=ExecutionEventType.NODE_START,
                execution_id=execution_id,
                timestamp=datetime.now(timezone.utc),
                node_name=node_name,
            )
        )

    def node_execute_after(
        node_name: str, task_data: TaskData, run_execution_data: RunExecutionData
    ) -> None:
        if task_data.error is not None:
            event = ExecutionEvent(
                type=ExecutionEventType.NODE_ERROR,
                execution_id=execution_id,
                timestamp=datetime.now(timezone.utc),
                node_name=node_name,
                error=task_data.error.message,
            )
        else:
            event = ExecutionEvent(
                type=ExecutionEventType.NODE_COMPLETE,
                execution_id=execution_id,
                timestamp=datetime.now(timezone.utc),
                node_name=node_name,
                data=(task_data.data or [None])[0],
            )
        push.send(event)

    def workflow_execute_before(workflow: Workflow, run_execution_data: RunExecutionData) -> None:
        push.send(
            ExecutionEvent(
                type=ExecutionEventType.EXECUTION_START,
                execution_id=execution_id,
                timestamp=datetime.now(timezone.utc),
            )
        )

    def workflow_execute_after(
        full_run_data: ExecutionState, new_static_data: dict[str, Any] | None
    ) -> None:
        if full_run_data.status == ExecutionStatus.WAITING:
            event_type = ExecutionEventType.EXECUTION_WAITING
        elif full_run_data.status == ExecutionStatus.SUCCESS:
            event_type = ExecutionEventType.EXECUTION_COMPLETE
        else:
            event_type = ExecutionEventType.EXECUTION_ERROR
        error = full_run_data.error
        push.send(
            ExecutionEvent(
                type=event_type,
                execution_id=execution_id,
                timestamp=datetime.now(timezone.utc),
                error=error.message if error else None,
                payload={"status": full_run_data.status.value},
            )
        )

    return {
        "nodeExecuteBefore": [node_execute_before],
        "nodeExecuteAfter": [node_execute_after],
        "workflowExecuteBefore": [workflow_execute_before],
        "workflowExecuteAfter": [workflow_execute_after],
    }


def get_lifecycle_hooks(
    execution_id: str,
    workflow: Workflow,
    mode: ExecutionMode,
    session_factory: sessionmaker,
    push: PushService,
    active_executions: ActiveExecutions,
    retry_of: str | None = None,
    session_id: str | None = None,
) -> WorkflowHooks:
    """All coordinator hooks of one execution."""
    hooks = WorkflowHooks(
        mode=mode,
        execution_id=execution_id,
        workflow=workflow,
        session_id=session_id,
        retry_of=retry_of,
    )
    hooks.merge(hook_functions_save(execution_id, workflow, session_factory))
    hooks.merge(hook_functions_push(execution_id, push))
    hooks.add_handler(
        "sendResponse",
        lambda response: active_executions.resolve_response(execution_id, response),
    )
    return hooks
