"""Workflow execution engine."""

from .expression_engine import ExpressionContext, ExpressionEngine, expression_engine
from .hooks import HOOK_NAMES, WorkflowHooks
from .node_execute_functions import AdditionalData, NodeExecutionContext
from .node_registry import NodeRegistryClass, node_registry, register_all_nodes
from .types import (
    BinaryData,
    ExecuteJob,
    ExecutionError,
    ExecutionEvent,
    ExecutionEventType,
    ExecutionItem,
    ExecutionState,
    ExecutionStatus,
    PairedItem,
    RunData,
    RunExecutionData,
    TaskData,
    TaskDataSource,
)
from .workflow import Connection, NodeDefinition, Workflow, WorkflowSettings
from .workflow_execute import WorkflowExecute

__all__ = [
    "AdditionalData",
    "BinaryData",
    "Connection",
    "ExecuteJob",
    "ExecutionError",
    "ExecutionEvent",
    "ExecutionEventType",
    "ExecutionItem",
    "ExecutionState",
    "ExecutionStatus",
    "ExpressionContext",
    "ExpressionEngine",
    "HOOK_NAMES",
    "NodeDefinition",
    "NodeExecutionContext",
    "NodeRegistryClass",
    "PairedItem",
    "RunData",
    "RunExecutionData",
    "TaskData",
    "TaskDataSource",
    "Workflow",
    "WorkflowExecute",
    "WorkflowHooks",
    "WorkflowSettings",
    "expression_engine",
    "node_registry",
    "register_all_nodes",
]
