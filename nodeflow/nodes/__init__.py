"""Workflow node implementations."""

from .base import BaseNode, NodeKind, NodeExecutionResult
from .data import SetNode
from .flow import (
    ExecuteWorkflowNode,
    IfNode,
    MergeNode,
    NoOpNode,
    StopAndErrorNode,
    WaitNode,
)
from .integrations import HttpRequestNode
from .output import RespondToWebhookNode
from .triggers import ExecuteWorkflowTriggerNode, StartNode, WebhookNode

BUILTIN_NODES: list[type[BaseNode]] = [
    StartNode,
    WebhookNode,
    ExecuteWorkflowTriggerNode,
    NoOpNode,
    SetNode,
    IfNode,
    MergeNode,
    WaitNode,
    ExecuteWorkflowNode,
    StopAndErrorNode,
    RespondToWebhookNode,
    HttpRequestNode,
]

__all__ = [
    "BUILTIN_NODES",
    "BaseNode",
    "ExecuteWorkflowNode",
    "ExecuteWorkflowTriggerNode",
    "HttpRequestNode",
    "IfNode",
    "MergeNode",
    "NodeExecutionResult",
    "NodeKind",
    "NoOpNode",
    "RespondToWebhookNode",
    "SetNode",
    "StartNode",
    "StopAndErrorNode",
    "WaitNode",
    "WebhookNode",
]
