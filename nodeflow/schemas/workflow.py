"""Workflow-related Pydantic schemas."""

from typing import Any, Literal

from pydantic import BaseModel, Field


class NodeDefinitionSchema(BaseModel):
    """Schema for node definition in a workflow."""

    name: str = Field(..., description="Unique name for this node in the workflow")
    type: str = Field(..., description="Node type identifier")
    type_version: int = Field(1, ge=1, description="Node type version")
    parameters: dict[str, Any] = Field(default_factory=dict, description="Node parameters")
    disabled: bool = Field(False, description="Disabled nodes pass their input through")
    continue_on_fail: bool = Field(False, description="Continue execution on failure")
    retry_on_fail: bool = Field(False, description="Retry the node when it fails")
    max_tries: int = Field(3, ge=1, description="Attempts when retry_on_fail is set (2-5)")
    wait_between_tries: int = Field(1000, ge=0, description="Delay between tries in ms")
    always_output_data: bool = Field(False, description="Emit one empty item instead of none")
    optional_inputs: list[int] = Field(default_factory=list, description="Inputs that may stay empty")
    position: list[float] | None = Field(None, description="UI position [x, y]")

    model_config = {
        "json_schema_extra": {
            "example": {
                "name": "HTTP Request",
                "type": "HttpRequest",
                "parameters": {"url": "https://api.example.com", "method": "GET"},
                "position": [100, 200],
            }
        }
    }


class ConnectionSchema(BaseModel):
    """Schema for connection between nodes."""

    source_node: str = Field(..., description="Source node name")
    target_node: str = Field(..., description="Target node name")
    source_output: int = Field(0, ge=0, description="Source output index")
    target_input: int = Field(0, ge=0, description="Target input index")


class WorkflowSettingsSchema(BaseModel):
    """Per-workflow execution settings."""

    execution_timeout: int | None = Field(None, description="Seconds; <= 0 disables")
    save_execution_progress: bool | None = None
    max_node_executions: int | None = Field(None, ge=1)
    caller_policy: Literal["any", "none", "workflowsFromAList"] = "any"
    caller_ids: list[str] = Field(default_factory=list)


class WorkflowCreateRequest(BaseModel):
    """Request schema for creating a workflow."""

    name: str = Field(..., min_length=1, max_length=255, description="Workflow name")
    nodes: list[NodeDefinitionSchema] = Field(..., min_length=1, description="List of nodes")
    connections: list[ConnectionSchema] = Field(
        default_factory=list, description="List of connections"
    )
    active: bool = False
    settings: WorkflowSettingsSchema = Field(default_factory=WorkflowSettingsSchema)
    static_data: dict[str, Any] = Field(default_factory=dict)
    pin_data: dict[str, list[dict[str, Any]]] | None = Field(
        None, description="Fixed output items per node name"
    )


class WorkflowUpdateRequest(BaseModel):
    """Request schema for updating a workflow."""

    name: str | None = Field(None, min_length=1, max_length=255, description="Workflow name")
    nodes: list[NodeDefinitionSchema] | None = Field(None, description="List of nodes")
    connections: list[ConnectionSchema] | None = Field(None, description="List of connections")
    settings: WorkflowSettingsSchema | None = Field(None, description="Workflow settings")
    pin_data: dict[str, list[dict[str, Any]]] | None = None


class ActiveToggleRequest(BaseModel):
    """Request schema for toggling workflow active state."""

    active: bool = Field(..., description="Whether the workflow should be active")


class WorkflowResponse(BaseModel):
    """Response schema for workflow creation."""

    id: str
    name: str
    active: bool
    webhook_url: str
    created_at: str


class WorkflowListItem(BaseModel):
    """Schema for workflow in list response."""

    id: str
    name: str
    active: bool
    webhook_url: str
    node_count: int
    created_at: str
    updated_at: str


class WorkflowDetailResponse(BaseModel):
    """Detailed workflow response."""

    id: str
    name: str
    active: bool
    webhook_url: str
    definition: dict[str, Any]
    created_at: str
    updated_at: str


class WorkflowActiveResponse(BaseModel):
    """Response for active toggle."""

    id: str
    active: bool
