"""Trigger nodes."""

from .execute_workflow_trigger import ExecuteWorkflowTriggerNode
from .start import StartNode
from .webhook import WebhookNode

__all__ = ["ExecuteWorkflowTriggerNode", "StartNode", "WebhookNode"]
