"""Flow control nodes - routing, timing and sub-workflows."""

from .execute_workflow import ExecuteWorkflowNode
from .if_node import IfNode
from .merge import MergeNode
from .no_op import NoOpNode
from .stop_and_error import StopAndErrorNode
from .wait import WaitNode

__all__ = [
    "ExecuteWorkflowNode",
    "IfNode",
    "MergeNode",
    "NoOpNode",
    "StopAndErrorNode",
    "WaitNode",
]
