"""No Operation node - pass items through unchanged."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..base import BaseNode, NodeTypeDescription

if TYPE_CHECKING:
    from ...engine.node_execute_functions import NodeExecutionContext
    from ..base import NodeExecutionResult


class NoOpNode(BaseNode):
    node_description = NodeTypeDescription(
        name="NoOp",
        display_name="No Operation",
        description="Pass items through unchanged",
        group=["flow"],
    )

    async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
        return self.output(context.get_input_data())
