"""Workflow graph: node definitions, connections and traversal helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from functools import cached_property
from typing import Any, Literal

from ..core.exceptions import ValidationError
from .types import ExecutionItem, ExecutionState


@dataclass
class NodeDefinition:
    """Definition of a node in a workflow."""

    name: str
    type: str
    type_version: int = 1
    parameters: dict[str, Any] = field(default_factory=dict)
    disabled: bool = False
    continue_on_fail: bool = False
    retry_on_fail: bool = False
    max_tries: int = 3
    wait_between_tries: int = 1000  # milliseconds
    always_output_data: bool = False
    # Inputs that may stay empty when the node is forced to run
    optional_inputs: list[int] = field(default_factory=list)
    position: list[float] | None = None


@dataclass
class Connection:
    """Connection from one node output to another node input."""

    source_node: str
    target_node: str
    source_output: int = 0
    target_input: int = 0


@dataclass
class WorkflowSettings:
    """Per-workflow execution settings."""

    execution_timeout: int | None = None  # seconds, <= 0 disables
    save_execution_progress: bool | None = None
    max_node_executions: int | None = None
    # Which parent workflows may run this one as a sub-workflow
    caller_policy: Literal["any", "none", "workflowsFromAList"] = "any"
    caller_ids: list[str] = field(default_factory=list)


@dataclass
class Workflow:
    """Workflow definition. Connections keep their declaration order."""

    name: str
    nodes: list[NodeDefinition]
    connections: list[Connection] = field(default_factory=list)
    id: str | None = None
    active: bool = False
    settings: WorkflowSettings = field(default_factory=WorkflowSettings)
    static_data: dict[str, Any] = field(default_factory=dict)
    pin_data: dict[str, list[ExecutionItem]] | None = None

    @cached_property
    def _node_map(self) -> dict[str, NodeDefinition]:
        return {n.name: n for n in self.nodes}

    @cached_property
    def connections_by_source(self) -> dict[str, dict[int, list[Connection]]]:
        """``(source node, output index) -> [connections]`` in declaration order."""
        result: dict[str, dict[int, list[Connection]]] = {}
        for conn in self.connections:
            result.setdefault(conn.source_node, {}).setdefault(conn.source_output, []).append(conn)
        return result

    @cached_property
    def connections_by_target(self) -> dict[str, list[Connection]]:
        result: dict[str, list[Connection]] = {}
        for conn in self.connections:
            result.setdefault(conn.target_node, []).append(conn)
        return result

    @cached_property
    def _connection_order(self) -> dict[int, int]:
        return {id(conn): index for index, conn in enumerate(self.connections)}

    def get_node(self, name: str) -> NodeDefinition | None:
        return self._node_map.get(name)

    def validate(self) -> None:
        """Check node name uniqueness and connection endpoints."""
        if not self.nodes:
            raise ValidationError("Workflow must have at least one node", field="nodes")

        names = [n.name for n in self.nodes]
        if len(names) != len(set(names)):
            raise ValidationError("Node names must be unique", field="nodes")

        for conn in self.connections:
            if conn.source_node not in self._node_map:
                raise ValidationError(
                    f"Connection references unknown source node: {conn.source_node}",
                    field="connections",
                )
            if conn.target_node not in self._node_map:
                raise ValidationError(
                    f"Connection references unknown target node: {conn.target_node}",
                    field="connections",
                )
            if conn.source_output < 0 or conn.target_input < 0:
                raise ValidationError(
                    "Connection indexes must not be negative", field="connections"
                )

    def outgoing(self, node_name: str, output_index: int) -> list[Connection]:
        return self.connections_by_source.get(node_name, {}).get(output_index, [])

    def incoming(self, node_name: str) -> list[Connection]:
        return self.connections_by_target.get(node_name, [])

    def connected_inputs(self, node_name: str) -> list[int]:
        return sorted({c.target_input for c in self.incoming(node_name)})

    def connection_index(self, conn: Connection) -> int:
        return self._connection_order.get(id(conn), len(self.connections))

    def get_parent_nodes(self, node_name: str) -> list[str]:
        """Direct parents in connection order."""
        return list(dict.fromkeys(c.source_node for c in self.incoming(node_name)))

    def get_child_nodes(self, node_name: str) -> list[str]:
        """Direct children in connection order."""
        children: list[str] = []
        for conns in self.connections_by_source.get(node_name, {}).values():
            children.extend(c.target_node for c in conns)
        return list(dict.fromkeys(children))

    def get_all_parent_nodes(self, node_name: str) -> list[str]:
        """Every ancestor of a node; safe on cyclic graphs."""
        return self._walk(node_name, self.get_parent_nodes)

    def get_all_child_nodes(self, node_name: str) -> list[str]:
        """Every descendant of a node; safe on cyclic graphs."""
        return self._walk(node_name, self.get_child_nodes)

    def _walk(self, node_name: str, step) -> list[str]:
        seen: dict[str, None] = {}
        queue = list(step(node_name))
        while queue:
            current = queue.pop(0)
            if current in seen or current == node_name:
                continue
            seen[current] = None
            queue.extend(step(current))
        return list(seen)

    def nodes_without_inputs(self) -> list[NodeDefinition]:
        return [n for n in self.nodes if not self.incoming(n.name)]


# --- Persisted records ---


@dataclass
class StoredWorkflow:
    """Stored workflow with metadata."""

    id: str
    name: str
    workflow: Workflow
    active: bool
    created_at: datetime
    updated_at: datetime


@dataclass
class ExecutionRecord:
    """A persisted execution: the run state plus the graph it ran against."""

    id: str
    workflow_id: str | None
    workflow_data: Workflow
    state: ExecutionState
    retry_of: str | None = None
    parent_execution_id: str | None = None
