"""Core type definitions for the workflow engine."""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Literal

from ..core.exceptions import (
    NodeExecutionError,
    WorkflowEngineError,
    WorkflowOperationError,
    WorkflowPermissionError,
)

ExecutionMode = Literal[
    "manual", "trigger", "webhook", "retry", "internal", "integrated", "cli"
]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionStatus(str, Enum):
    """Lifecycle status of a run."""

    NEW = "new"
    RUNNING = "running"
    WAITING = "waiting"
    SUCCESS = "success"
    ERROR = "error"
    CANCELED = "canceled"


# new -> error/canceled covers runs rejected or stopped before they started.
# waiting -> canceled covers a sleeping run stopped by the wait tracker.
ALLOWED_TRANSITIONS: dict[ExecutionStatus, frozenset[ExecutionStatus]] = {
    ExecutionStatus.NEW: frozenset(
        {ExecutionStatus.RUNNING, ExecutionStatus.ERROR, ExecutionStatus.CANCELED}
    ),
    ExecutionStatus.RUNNING: frozenset(
        {
            ExecutionStatus.SUCCESS,
            ExecutionStatus.ERROR,
            ExecutionStatus.CANCELED,
            ExecutionStatus.WAITING,
        }
    ),
    ExecutionStatus.WAITING: frozenset(
        {ExecutionStatus.RUNNING, ExecutionStatus.CANCELED}
    ),
    ExecutionStatus.SUCCESS: frozenset(),
    ExecutionStatus.ERROR: frozenset(),
    ExecutionStatus.CANCELED: frozenset(),
}


def check_transition(current: ExecutionStatus, new: ExecutionStatus) -> ExecutionStatus:
    """Return ``new`` if ``current -> new`` is a legal transition."""
    if new == current or new in ALLOWED_TRANSITIONS[current]:
        return new
    raise WorkflowOperationError(
        f'Invalid execution status transition "{current.value}" -> "{new.value}"'
    )


# --- Items ---


@dataclass
class BinaryData:
    """Binary payload attached to an item. ``id`` is ``"<mode>:<file id>"`` once stored."""

    mime_type: str = "application/octet-stream"
    file_name: str | None = None
    file_extension: str | None = None
    file_size: int | None = None
    id: str | None = None
    # Base64 payload when the data is kept inline
    data: str | None = None


@dataclass
class PairedItem:
    """Back-reference to the originating item of the upstream node."""

    item: int
    input: int = 0


@dataclass
class ExecutionItem:
    """Data item passed between nodes."""

    json: dict[str, Any] = field(default_factory=dict)
    binary: dict[str, BinaryData] | None = None
    paired_item: PairedItem | list[PairedItem] | None = None


# --- Errors ---


@dataclass
class ExecutionError:
    """Serializable error attached to a task or to the run result."""

    message: str
    name: str = "Error"
    stack: str | None = None
    node_name: str | None = None
    description: str | None = None
    timestamp: datetime = field(default_factory=utc_now)

    @classmethod
    def from_exception(
        cls, exc: BaseException, node_name: str | None = None
    ) -> ExecutionError:
        """Build the serializable form of ``exc``."""
        description = getattr(exc, "description", None)
        if isinstance(exc, (NodeExecutionError, WorkflowPermissionError)) and exc.node_name:
            node_name = exc.node_name
        message = exc.message if isinstance(exc, WorkflowEngineError) else str(exc)
        return cls(
            message=message or type(exc).__name__,
            name=type(exc).__name__,
            stack="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
            node_name=node_name,
            description=description,
        )


# --- Run data ---


@dataclass
class TaskDataSource:
    """Which upstream output (and which run of it) fed a node invocation."""

    previous_node: str
    previous_node_output: int = 0
    previous_node_run: int = 0


@dataclass
class TaskData:
    """One node's execution result for one pass."""

    start_time: datetime
    execution_time: float = 0.0  # milliseconds
    source: list[TaskDataSource | None] = field(default_factory=list)
    data: list[list[ExecutionItem] | None] | None = None
    error: ExecutionError | None = None


RunData = dict[str, list[TaskData]]


@dataclass
class ExecuteJob:
    """Entry of the node execution stack: a node plus its input items per slot."""

    node: str
    data: list[list[ExecutionItem] | None]
    source: list[TaskDataSource | None] = field(default_factory=list)


@dataclass
class PendingInput:
    """Items that arrived on one input of a node still waiting for its other inputs."""

    input_index: int
    order: int
    source: TaskDataSource
    items: list[ExecutionItem]


@dataclass
class WaitingExecution:
    """A multi-input node collecting inputs before it can run."""

    node: str
    pending: list[PendingInput] = field(default_factory=list)

    def arrived_inputs(self) -> set[int]:
        return {p.input_index for p in self.pending}

    def has_contribution(self, source_node: str, source_output: int, input_index: int) -> bool:
        return any(
            p.input_index == input_index
            and p.source.previous_node == source_node
            and p.source.previous_node_output == source_output
            for p in self.pending
        )

    def to_job(self, input_count: int) -> ExecuteJob:
        """Concatenate arrived items per input in connection-declaration order."""
        data: list[list[ExecutionItem] | None] = []
        source: list[TaskDataSource | None] = []
        for input_index in range(input_count):
            arrived = sorted(
                (p for p in self.pending if p.input_index == input_index),
                key=lambda p: p.order,
            )
            data.append([item for p in arrived for item in p.items])
            source.append(arrived[0].source if arrived else None)
        return ExecuteJob(node=self.node, data=data, source=source)


@dataclass
class StartData:
    destination_node: str | None = None
    run_node_filter: list[str] | None = None


@dataclass
class ResultData:
    run_data: RunData = field(default_factory=dict)
    pin_data: dict[str, list[ExecutionItem]] | None = None
    last_node_executed: str | None = None
    error: ExecutionError | None = None


@dataclass
class ExecutionData:
    node_execution_stack: list[ExecuteJob] = field(default_factory=list)
    waiting_execution: dict[str, list[WaitingExecution]] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class RunExecutionData:
    """Everything needed to continue or inspect a run."""

    start_data: StartData = field(default_factory=StartData)
    result_data: ResultData = field(default_factory=ResultData)
    execution_data: ExecutionData = field(default_factory=ExecutionData)
    wait_till: datetime | None = None


@dataclass
class ExecutionState:
    """The run: status, timing and the full run execution data."""

    mode: ExecutionMode
    started_at: datetime
    status: ExecutionStatus = ExecutionStatus.NEW
    data: RunExecutionData = field(default_factory=RunExecutionData)
    stopped_at: datetime | None = None
    finished: bool = False
    wait_till: datetime | None = None

    def transition(self, status: ExecutionStatus) -> None:
        self.status = check_transition(self.status, status)
        self.finished = status == ExecutionStatus.SUCCESS

    @property
    def run_data(self) -> RunData:
        return self.data.result_data.run_data

    @property
    def error(self) -> ExecutionError | None:
        return self.data.result_data.error


# --- Push events ---


class ExecutionEventType(str, Enum):
    """Types of execution events for SSE streaming."""

    EXECUTION_START = "execution:start"
    NODE_START = "node:start"
    NODE_COMPLETE = "node:complete"
    NODE_ERROR = "node:error"
    EXECUTION_COMPLETE = "execution:complete"
    EXECUTION_ERROR = "execution:error"
    EXECUTION_WAITING = "execution:waiting"
    UI_MESSAGE = "ui:message"


@dataclass
class ExecutionEvent:
    """Real-time execution event for SSE streaming."""

    type: ExecutionEventType
    execution_id: str
    timestamp: datetime
    node_name: str | None = None
    data: list[ExecutionItem] | None = None
    error: str | None = None
    payload: Any = None


# Callback type for receiving execution events
ExecutionEventCallback = Callable[[ExecutionEvent], None]
