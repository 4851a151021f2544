"""Execution service for business logic."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..core.exceptions import ExecutionNotFoundError, ValidationError
from ..engine.execution_payload import WorkflowExecutionPayload
from ..engine.serialization import to_jsonable
from ..engine.types import ExecutionError, ExecutionState, ExecutionStatus, RunData, RunExecutionData
from ..engine.workflow import ExecutionRecord, Workflow
from ..schemas.execution import (
    ExecutionDetailResponse,
    ExecutionErrorSchema,
    ExecutionListItem,
    ExecutionResponse,
    StopExecutionResponse,
)

if TYPE_CHECKING:
    from ..repositories import ExecutionRepository
    from .wait_tracker import WaitTracker
    from .workflow_runner import WorkflowRunner


def _error_schema(error: ExecutionError | None) -> ExecutionErrorSchema | None:
    if error is None:
        return None
    return ExecutionErrorSchema(
        name=error.name,
        message=error.message,
        node_name=error.node_name,
        description=error.description,
    )


def build_execution_response(execution_id: str, state: ExecutionState | None) -> ExecutionResponse:
    """Response for a run the caller waited on."""
    if state is None:
        return ExecutionResponse(execution_id=execution_id, status=ExecutionStatus.CANCELED.value)
    return ExecutionResponse(
        execution_id=execution_id,
        status=state.status.value,
        finished=state.finished,
        last_node_executed=state.data.result_data.last_node_executed,
        data=to_jsonable(state.run_data, RunData),
        error=_error_schema(state.error),
    )


class ExecutionService:
    """Service for execution operations."""

    def __init__(
        self,
        execution_repo: ExecutionRepository,
        runner: WorkflowRunner,
        wait_tracker: WaitTracker,
    ) -> None:
        self._execution_repo = execution_repo
        self._runner = runner
        self._wait_tracker = wait_tracker

    async def list_executions(
        self, workflow_id: str | None = None, status: ExecutionStatus | None = None
    ) -> list[ExecutionListItem]:
        """List execution history."""
        executions = await self._execution_repo.list(workflow_id, status)
        return [ExecutionListItem(**self._summary(e)) for e in executions]

    async def get_execution(self, execution_id: str) -> ExecutionDetailResponse:
        """Get execution details."""
        execution = await self._execution_repo.get(execution_id)
        if not execution:
            raise ExecutionNotFoundError(execution_id)

        return ExecutionDetailResponse(
            **self._summary(execution),
            data=to_jsonable(execution.state.data, RunExecutionData),
            workflow_data=to_jsonable(execution.workflow_data, Workflow),
            error=_error_schema(execution.state.error),
        )

    async def delete_execution(self, execution_id: str) -> bool:
        """Delete an execution record."""
        deleted = await self._execution_repo.delete(execution_id)
        if not deleted:
            raise ExecutionNotFoundError(execution_id)
        return True

    async def stop_execution(self, execution_id: str) -> StopExecutionResponse:
        """Stop a running execution, or cancel one that is waiting."""
        if self._runner.active_executions.is_active(execution_id):
            state = await self._runner.stop_execution(execution_id)
            if state is None:
                record = await self._execution_repo.get(execution_id)
                if record is None:
                    raise ExecutionNotFoundError(execution_id)
                state = record.state
        else:
            state = await self._wait_tracker.stop_execution(execution_id)

        return StopExecutionResponse(
            id=execution_id,
            mode=state.mode,
            status=state.status.value,
            started_at=state.started_at.isoformat(),
            stopped_at=state.stopped_at.isoformat() if state.stopped_at else None,
            finished=state.finished,
        )

    async def retry_execution(self, execution_id: str) -> ExecutionResponse:
        """
        Retry a failed execution from the node that failed.

        Earlier node results are reused; the failed node and everything
        after it run again against the stored workflow definition.
        """
        record = await self._execution_repo.get(execution_id)
        if not record:
            raise ExecutionNotFoundError(execution_id)
        if record.state.status not in (ExecutionStatus.ERROR, ExecutionStatus.CANCELED):
            raise ValidationError(
                f'Execution "{execution_id}" did not fail and cannot be retried', field="status"
            )

        payload = self._retry_payload(record)
        new_id, state = await self._runner.run_and_wait(payload)
        return build_execution_response(new_id, state)

    def _retry_payload(self, record: ExecutionRecord) -> WorkflowExecutionPayload:
        result_data = record.state.data.result_data
        failed_node = result_data.last_node_executed
        workflow = record.workflow_data
        if (
            failed_node is None
            or workflow.get_node(failed_node) is None
            or not workflow.get_parent_nodes(failed_node)
        ):
            # Nothing to restart from; run the whole workflow again
            return WorkflowExecutionPayload(
                workflow=record.workflow_data, mode="retry", retry_of=record.id
            )
        return WorkflowExecutionPayload(
            workflow=record.workflow_data,
            mode="retry",
            start_nodes=[failed_node],
            run_data=dict(result_data.run_data),
            pin_data=result_data.pin_data,
            retry_of=record.id,
        )

    def _summary(self, execution: ExecutionRecord) -> dict:
        state = execution.state
        return {
            "id": execution.id,
            "workflow_id": execution.workflow_id,
            "workflow_name": execution.workflow_data.name,
            "status": state.status.value,
            "mode": state.mode,
            "finished": state.finished,
            "retry_of": execution.retry_of,
            "parent_execution_id": execution.parent_execution_id,
            "started_at": state.started_at.isoformat(),
            "stopped_at": state.stopped_at.isoformat() if state.stopped_at else None,
            "wait_till": state.wait_till.isoformat() if state.wait_till else None,
        }
