"""Start node - manual trigger to begin workflow execution."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ...engine.types import ExecutionItem
from ..base import BaseNode, NodeKind, NodeOutputDefinition, NodeTypeDescription

if TYPE_CHECKING:
    from ...engine.node_execute_functions import NodeExecutionContext
    from ..base import NodeExecutionResult


class StartNode(BaseNode):
    """Start node - manual trigger to begin workflow execution."""

    kind = NodeKind.TRIGGER
    node_description = NodeTypeDescription(
        name="Start",
        display_name="Start",
        description="Manual trigger to start workflow execution",
        group=["trigger"],
        inputs=[],
        outputs=[NodeOutputDefinition(name="main", display_name="Output")],
    )

    async def trigger(self, context: NodeExecutionContext) -> NodeExecutionResult:
        # Pass through the items the run was started with
        return self.output(context.get_input_data(0) or [ExecutionItem()])
