"""Out-of-process execution: one worker process per execution."""

from .channel import ExecutionIdCorrelation, StdioChannel, decode_message, encode_message
from .process import WorkflowRunnerProcess

__all__ = [
    "ExecutionIdCorrelation",
    "StdioChannel",
    "WorkflowRunnerProcess",
    "decode_message",
    "encode_message",
]
