"""What a coordinator hands to whoever runs an execution (in-process or worker)."""

from __future__ import annotations

from dataclasses import dataclass

from .types import ExecutionItem, ExecutionMode, ExecutionState, RunData, RunExecutionData
from .workflow import Workflow
from .workflow_execute import WorkflowExecute


@dataclass
class WorkflowExecutionPayload:
    """
    Everything needed to start or resume one execution.

    ``execution_data`` set means resume (continue the persisted stack);
    ``start_nodes`` set means a partial run over ``run_data``; otherwise a
    fresh run from the start node.
    """

    workflow: Workflow
    mode: ExecutionMode = "manual"
    execution_data: RunExecutionData | None = None
    start_node: str | None = None
    start_nodes: list[str] | None = None
    run_data: RunData | None = None
    destination_node: str | None = None
    pin_data: dict[str, list[ExecutionItem]] | None = None
    trigger_data: list[ExecutionItem] | None = None
    retry_of: str | None = None
    user_id: str | None = None
    session_id: str | None = None


async def start_workflow_execute(
    execute: WorkflowExecute, payload: WorkflowExecutionPayload
) -> ExecutionState:
    """Pick the engine entry point that matches the payload."""
    if payload.execution_data is not None:
        execute.run_execution_data = payload.execution_data
        return await execute.process_run_execution_data(payload.workflow)

    if payload.start_nodes:
        return await execute.run_partial_workflow(
            payload.workflow,
            payload.run_data or {},
            payload.start_nodes,
            destination_node=payload.destination_node,
            pin_data=payload.pin_data,
        )

    return await execute.run(
        payload.workflow,
        start_node=payload.start_node,
        destination_node=payload.destination_node,
        pin_data=payload.pin_data,
        trigger_data=payload.trigger_data,
    )
