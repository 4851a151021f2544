"""Execute Workflow Trigger node - entry point of workflows run as sub-workflows."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ...engine.types import ExecutionItem
from ..base import BaseNode, NodeKind, NodeOutputDefinition, NodeTypeDescription

if TYPE_CHECKING:
    from ...engine.node_execute_functions import NodeExecutionContext
    from ..base import NodeExecutionResult


class ExecuteWorkflowTriggerNode(BaseNode):
    """Receives the items the calling workflow passes in."""

    kind = NodeKind.TRIGGER
    node_description = NodeTypeDescription(
        name="ExecuteWorkflowTrigger",
        display_name="Execute Workflow Trigger",
        description="Entry point for workflows called by the Execute Workflow node",
        group=["trigger"],
        inputs=[],
        outputs=[NodeOutputDefinition(name="main", display_name="Output")],
    )

    async def trigger(self, context: NodeExecutionContext) -> NodeExecutionResult:
        items = context.get_input_data(0)
        if items:
            return self.output(items)

        # Manual test run without a caller
        default_input = context.get_node_parameter("defaultInput", default={})
        if not isinstance(default_input, dict):
            default_input = {"data": default_input}
        return self.output([ExecutionItem(json=dict(default_input))])
