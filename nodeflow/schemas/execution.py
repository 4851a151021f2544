"""Execution-related Pydantic schemas."""

from typing import Any

from pydantic import BaseModel, Field


class RunWorkflowRequest(BaseModel):
    """Options for running a workflow (full or partial)."""

    input_data: list[dict[str, Any]] | None = Field(
        None, description="JSON of the items handed to the start node"
    )
    start_node: str | None = Field(None, description="Node to start a full run from")
    start_nodes: list[str] | None = Field(
        None, description="Re-run from these nodes on top of run_data (partial run)"
    )
    run_data: dict[str, Any] | None = Field(None, description="Earlier run data for a partial run")
    destination_node: str | None = Field(None, description="Stop once this node has run")
    pin_data: dict[str, list[dict[str, Any]]] | None = None
    wait: bool = Field(True, description="Wait for the execution to finish")


class ExecutionErrorSchema(BaseModel):
    """Schema for execution error."""

    name: str
    message: str
    node_name: str | None = None
    description: str | None = None


class ExecutionResponse(BaseModel):
    """Response schema for workflow execution."""

    execution_id: str = Field(..., description="Unique execution ID")
    status: str = Field(..., description="Execution status")
    finished: bool = False
    last_node_executed: str | None = None
    data: dict[str, Any] | None = Field(None, description="Run data per node name")
    error: ExecutionErrorSchema | None = None


class ExecutionListItem(BaseModel):
    """Schema for execution in list response."""

    id: str
    workflow_id: str | None
    workflow_name: str
    status: str
    mode: str
    finished: bool
    retry_of: str | None = None
    parent_execution_id: str | None = None
    started_at: str
    stopped_at: str | None
    wait_till: str | None = None


class ExecutionDetailResponse(ExecutionListItem):
    """Detailed execution response."""

    data: dict[str, Any]
    workflow_data: dict[str, Any]
    error: ExecutionErrorSchema | None = None


class StopExecutionResponse(BaseModel):
    """Result of a stop request."""

    id: str
    mode: str
    status: str
    started_at: str
    stopped_at: str | None
    finished: bool

