"""Merge node - combine data from two workflow branches."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ...engine.types import ExecutionItem, PairedItem
from ..base import BaseNode, NodeInputDefinition, NodeOutputDefinition, NodeTypeDescription

if TYPE_CHECKING:
    from ...engine.node_execute_functions import NodeExecutionContext
    from ..base import NodeExecutionResult


class MergeNode(BaseNode):
    """
    Merge node - combine data from two workflow branches.

    Both inputs are optional: once nothing else can run, the node runs with
    whatever arrived. ``wait`` mode outputs nothing unless both inputs have
    items.
    """

    node_description = NodeTypeDescription(
        name="Merge",
        display_name="Merge",
        description="Combine data from multiple workflow branches",
        group=["flow"],
        inputs=[
            NodeInputDefinition(name="input1", display_name="Input 1", required=False),
            NodeInputDefinition(name="input2", display_name="Input 2", required=False),
        ],
        outputs=[NodeOutputDefinition(name="main", display_name="Output")],
    )

    async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
        mode = context.get_node_parameter("mode", default="append")
        input1 = context.get_input_data(0)
        input2 = context.get_input_data(1)

        if mode == "append":
            result = input1 + input2

        elif mode == "passThrough":
            output = context.get_node_parameter("output", default="input1")
            if not input1 or not input2:
                return self.output([])
            result = input1 if output == "input1" else input2

        elif mode == "wait":
            if not input1 or not input2:
                return self.output([])
            result = input1 + input2

        elif mode == "keepMatches":
            match_field = context.get_node_parameter("matchField", default="id")
            keys = {self._get_nested_value(item.json, match_field) for item in input2}
            result = [
                item for item in input1 if self._get_nested_value(item.json, match_field) in keys
            ]

        elif mode == "combinePairs":
            result = []
            for index in range(min(len(input1), len(input2))):
                result.append(
                    ExecutionItem(
                        json={**input1[index].json, **input2[index].json},
                        binary={**(input1[index].binary or {}), **(input2[index].binary or {})}
                        or None,
                        paired_item=[PairedItem(item=index, input=0), PairedItem(item=index, input=1)],
                    )
                )

        else:
            raise ValueError(f'Unknown merge mode "{mode}"')

        return self.output(result)

    def _get_nested_value(self, obj: dict[str, Any], path: str) -> Any:
        """Get value at nested path."""
        current: Any = obj
        for key in path.split("."):
            if isinstance(current, dict):
                current = current.get(key)
            else:
                return None
        return current
