"""Node registry for managing workflow node types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..core.exceptions import NodeNotFoundError

if TYPE_CHECKING:
    from ..nodes.base import BaseNode


@dataclass
class NodeTypeInfo:
    """Node type summary for API responses."""

    type: str
    display_name: str
    description: str
    kind: str
    versions: list[int]
    input_count: int
    output_count: int
    group: list[str] | None = None


class NodeRegistryClass:
    """Registry mapping ``(type name, version)`` to a node implementation."""

    def __init__(self) -> None:
        self._instances: dict[tuple[str, int], BaseNode] = {}
        self._latest: dict[str, int] = {}

    def get(self, node_type: str, version: int | None = None) -> BaseNode:
        """
        Get a cached node instance by type and version.

        Node instances are stateless, so we return the cached instance.
        Without a version the latest registered version is returned.

        Raises:
            NodeNotFoundError: If the type/version is not registered
        """
        if version is None:
            version = self._latest.get(node_type)
        instance = self._instances.get((node_type, version)) if version is not None else None
        if instance is None:
            raise NodeNotFoundError(node_type, version)
        return instance

    def has(self, node_type: str, version: int | None = None) -> bool:
        """Check if node type (and version) is registered."""
        if version is None:
            return node_type in self._latest
        return (node_type, version) in self._instances

    def list(self) -> list[str]:
        """List all registered node types."""
        return list(self._latest.keys())

    def get_node_info(self) -> list[NodeTypeInfo]:
        return [
            self._build_node_type_info(self._instances[(name, version)])
            for name, version in self._latest.items()
        ]

    def _build_node_type_info(self, instance: BaseNode) -> NodeTypeInfo:
        desc = instance.node_description
        return NodeTypeInfo(
            type=instance.type,
            display_name=desc.display_name,
            description=instance.description,
            kind=instance.kind.value,
            versions=list(instance.versions),
            input_count=instance.input_count,
            output_count=instance.output_count,
            group=desc.group,
        )

    def register(self, node_class: type[BaseNode]) -> None:
        """Register every version a node class declares, if not already registered."""
        instance = node_class()
        for version in instance.versions:
            key = (instance.type, version)
            if key in self._instances:
                continue
            self._instances[key] = instance
            self._latest[instance.type] = max(version, self._latest.get(instance.type, version))

    def clear(self) -> None:
        self._instances.clear()
        self._latest.clear()


# Singleton instance
node_registry = NodeRegistryClass()


def register_all_nodes(registry: NodeRegistryClass | None = None) -> NodeRegistryClass:
    """Register all built-in nodes."""
    from ..nodes import BUILTIN_NODES

    registry = registry or node_registry
    for node_class in BUILTIN_NODES:
        registry.register(node_class)
    return registry
