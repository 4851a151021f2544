"""Custom exceptions for the workflow engine."""

from typing import Any


class WorkflowEngineError(Exception):
    """Base exception for all workflow engine errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class WorkflowNotFoundError(WorkflowEngineError):
    """Raised when a workflow is not found."""

    def __init__(self, workflow_id: str) -> None:
        super().__init__(
            message=f"Workflow not found: {workflow_id}",
            details={"workflow_id": workflow_id},
        )
        self.workflow_id = workflow_id


class ExecutionNotFoundError(WorkflowEngineError):
    """Raised when an execution record is not found."""

    def __init__(self, execution_id: str, message: str | None = None) -> None:
        super().__init__(
            message=message or f'The execution ID "{execution_id}" could not be found.',
            details={"execution_id": execution_id},
        )
        self.execution_id = execution_id


class NodeNotFoundError(WorkflowEngineError):
    """Raised when a node type is not registered."""

    def __init__(self, node_type: str, version: int | None = None) -> None:
        label = node_type if version is None else f"{node_type} v{version}"
        super().__init__(
            message=f"Node type not found: {label}",
            details={"node_type": node_type, "version": version},
        )
        self.node_type = node_type
        self.version = version


class ValidationError(WorkflowEngineError):
    """Raised when a workflow graph fails validation."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(
            message=message,
            details={"field": field} if field else {},
        )
        self.field = field


class NodeExecutionError(WorkflowEngineError):
    """Raised by a node implementation; carries the offending node."""

    def __init__(
        self,
        node_name: str,
        message: str,
        description: str | None = None,
        item_index: int | None = None,
    ) -> None:
        super().__init__(
            message=message,
            details={"node_name": node_name, "item_index": item_index},
        )
        self.node_name = node_name
        self.description = description
        self.item_index = item_index


class WorkflowOperationError(WorkflowEngineError):
    """Raised by the engine itself (cancellation, timeout, bad transitions)."""


class WorkflowCanceledError(WorkflowOperationError):
    """The execution was stopped on request."""

    def __init__(self, message: str = "Workflow-Execution has been canceled!") -> None:
        super().__init__(message)


class WorkflowTimeoutError(WorkflowOperationError):
    """The execution ran past its deadline."""

    def __init__(self, message: str = "Workflow execution timed out!") -> None:
        super().__init__(message)


class WorkflowPermissionError(WorkflowEngineError):
    """Pre-execution authorization failure."""

    def __init__(self, message: str, node_name: str | None = None) -> None:
        super().__init__(message=message, details={"node_name": node_name})
        self.node_name = node_name


class TransportError(WorkflowEngineError):
    """Raised when a message cannot be sent between worker and coordinator."""

    def __init__(self, message_type: str, reason: str) -> None:
        super().__init__(
            message=f'Could not send "{message_type}" message: {reason}',
            details={"message_type": message_type},
        )
        self.message_type = message_type


class InvalidBinaryDataModeError(WorkflowEngineError):
    """Raised when a binary data mode is not one of the configured modes."""

    def __init__(self, mode: str) -> None:
        super().__init__(
            message=f"Invalid binary data mode: {mode}",
            details={"mode": mode},
        )
        self.mode = mode


class ExpressionError(WorkflowEngineError):
    """Raised when a parameter expression cannot be evaluated."""

    def __init__(self, expression: str, reason: str) -> None:
        super().__init__(
            message=f"Expression evaluation failed: {reason}",
            details={"expression": expression},
        )
        self.expression = expression
