"""Node service for business logic."""

from __future__ import annotations

from dataclasses import asdict
from typing import TYPE_CHECKING

from ..core.exceptions import NodeNotFoundError
from ..schemas.node import NodeTypeInfo

if TYPE_CHECKING:
    from ..engine.node_registry import NodeRegistryClass


class NodeService:
    """Service for node operations."""

    def __init__(self, node_registry: NodeRegistryClass) -> None:
        self._node_registry = node_registry

    def list_nodes(self) -> list[NodeTypeInfo]:
        """List all available node types."""
        return [NodeTypeInfo(**asdict(info)) for info in self._node_registry.get_node_info()]

    def get_node(self, node_type: str) -> NodeTypeInfo:
        """Get a specific node type."""
        for info in self._node_registry.get_node_info():
            if info.type == node_type:
                return NodeTypeInfo(**asdict(info))
        raise NodeNotFoundError(node_type)

    def get_nodes_by_group(self, group: str) -> list[NodeTypeInfo]:
        """Get nodes filtered by group."""
        return [n for n in self.list_nodes() if group in (n.group or [])]
