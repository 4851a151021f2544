"""Service layer for workflow engine business logic."""

from .active_executions import ActiveExecution, ActiveExecutions
from .execution_service import ExecutionService
from .node_service import NodeService
from .push_service import PushService
from .wait_tracker import WaitTracker
from .webhook_service import WebhookResponse, WebhookService
from .workflow_runner import WorkflowRunner
from .workflow_service import WorkflowService

__all__ = [
    "ActiveExecution",
    "ActiveExecutions",
    "ExecutionService",
    "NodeService",
    "PushService",
    "WaitTracker",
    "WebhookResponse",
    "WebhookService",
    "WorkflowRunner",
    "WorkflowService",
]
