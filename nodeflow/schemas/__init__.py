"""Pydantic schemas for API request/response validation."""

from .workflow import (
    NodeDefinitionSchema,
    ConnectionSchema,
    WorkflowSettingsSchema,
    WorkflowCreateRequest,
    WorkflowUpdateRequest,
    WorkflowResponse,
    WorkflowListItem,
    WorkflowDetailResponse,
    ActiveToggleRequest,
    WorkflowActiveResponse,
)
from .execution import (
    RunWorkflowRequest,
    ExecutionErrorSchema,
    ExecutionResponse,
    ExecutionListItem,
    ExecutionDetailResponse,
    StopExecutionResponse,
)
from .node import NodeTypeInfo
from .common import (
    SuccessResponse,
    HealthResponse,
    RootResponse,
)

__all__ = [
    # Workflow schemas
    "NodeDefinitionSchema",
    "ConnectionSchema",
    "WorkflowSettingsSchema",
    "WorkflowCreateRequest",
    "WorkflowUpdateRequest",
    "WorkflowResponse",
    "WorkflowListItem",
    "WorkflowDetailResponse",
    "ActiveToggleRequest",
    "WorkflowActiveResponse",
    # Execution schemas
    "RunWorkflowRequest",
    "ExecutionErrorSchema",
    "ExecutionResponse",
    "ExecutionListItem",
    "ExecutionDetailResponse",
    "StopExecutionResponse",
    # Node schemas
    "NodeTypeInfo",
    # Common schemas
    "SuccessResponse",
    "HealthResponse",
    "RootResponse",
]
