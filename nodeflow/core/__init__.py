"""Core module for workflow engine - config, exceptions, and dependencies."""

from .config import settings, Settings
from .exceptions import (
    WorkflowEngineError,
    WorkflowNotFoundError,
    ExecutionNotFoundError,
    NodeNotFoundError,
    ValidationError,
    NodeExecutionError,
    WorkflowOperationError,
    WorkflowCanceledError,
    WorkflowTimeoutError,
    WorkflowPermissionError,
    TransportError,
    InvalidBinaryDataModeError,
    ExpressionError,
)

__all__ = [
    # Config
    "settings",
    "Settings",
    # Exceptions
    "WorkflowEngineError",
    "WorkflowNotFoundError",
    "ExecutionNotFoundError",
    "NodeNotFoundError",
    "ValidationError",
    "NodeExecutionError",
    "WorkflowOperationError",
    "WorkflowCanceledError",
    "WorkflowTimeoutError",
    "WorkflowPermissionError",
    "TransportError",
    "InvalidBinaryDataModeError",
    "ExpressionError",
]
