"""Base node class for all workflow nodes."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from ..engine.node_execute_functions import NodeExecutionContext
    from ..engine.types import ExecutionItem


class NodeKind(str, Enum):
    """Entry point the engine uses to run a node type."""

    EXECUTE = "execute"
    POLL = "poll"
    TRIGGER = "trigger"
    WEBHOOK = "webhook"


@dataclass
class NodeInputDefinition:
    """Input definition for a node."""

    name: str
    display_name: str
    type: str = "main"
    required: bool = True


@dataclass
class NodeOutputDefinition:
    """Output definition for a node."""

    name: str
    display_name: str
    type: str = "main"


@dataclass
class NodeTypeDescription:
    """Description of a node type: identity, versions and input/output slots."""

    name: str
    display_name: str
    description: str
    versions: tuple[int, ...] = (1,)
    group: list[str] = field(default_factory=lambda: ["transform"])
    inputs: list[NodeInputDefinition] = field(
        default_factory=lambda: [NodeInputDefinition(name="main", display_name="Input")]
    )
    outputs: list[NodeOutputDefinition] = field(
        default_factory=lambda: [NodeOutputDefinition(name="main", display_name="Output")]
    )


@dataclass
class NodeExecutionResult:
    """
    Result of a node invocation: one item list per output slot.

    A ``None`` slot means the branch produced nothing and stops there.
    """

    outputs: list[list[ExecutionItem] | None]


class BaseNode:
    """
    Base class for all workflow nodes.

    Subclasses set ``node_description`` and ``kind`` and implement the entry
    point matching their kind.
    """

    node_description: NodeTypeDescription
    kind: NodeKind = NodeKind.EXECUTE

    @property
    def type(self) -> str:
        """Node type identifier."""
        return self.node_description.name

    @property
    def versions(self) -> tuple[int, ...]:
        return self.node_description.versions

    @property
    def description(self) -> str:
        return self.node_description.description

    @property
    def input_count(self) -> int:
        return len(self.node_description.inputs)

    @property
    def output_count(self) -> int:
        return len(self.node_description.outputs)

    @property
    def optional_inputs(self) -> set[int]:
        return {
            index
            for index, definition in enumerate(self.node_description.inputs)
            if not definition.required
        }

    @property
    def is_trigger(self) -> bool:
        return self.kind is not NodeKind.EXECUTE

    async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult | None:
        raise NotImplementedError(f'Node "{self.type}" does not implement execute')

    async def poll(self, context: NodeExecutionContext) -> NodeExecutionResult | None:
        raise NotImplementedError(f'Node "{self.type}" does not implement poll')

    async def trigger(self, context: NodeExecutionContext) -> NodeExecutionResult | None:
        raise NotImplementedError(f'Node "{self.type}" does not implement trigger')

    async def webhook(self, request_data: dict[str, Any]) -> list[ExecutionItem]:
        """Turn an incoming HTTP request into the workflow's first items."""
        raise NotImplementedError(f'Node "{self.type}" does not implement webhook')

    def output(self, data: list[ExecutionItem]) -> NodeExecutionResult:
        """Helper to create single-output result."""
        return NodeExecutionResult(outputs=[data])

    def outputs(self, *outputs: list[ExecutionItem] | None) -> NodeExecutionResult:
        """Helper to create multi-output result."""
        return NodeExecutionResult(outputs=list(outputs))
