"""If node - route items based on a condition (true/false outputs)."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

from ..base import BaseNode, NodeOutputDefinition, NodeTypeDescription

if TYPE_CHECKING:
    from ...engine.node_execute_functions import NodeExecutionContext
    from ...engine.types import ExecutionItem
    from ..base import NodeExecutionResult


class IfNode(BaseNode):
    """If node - route items based on a condition with true/false outputs."""

    node_description = NodeTypeDescription(
        name="If",
        display_name="If",
        description="Route items based on a condition (true/false outputs)",
        group=["flow"],
        outputs=[
            NodeOutputDefinition(name="true", display_name="True"),
            NodeOutputDefinition(name="false", display_name="False"),
        ],
    )

    async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
        true_output: list[ExecutionItem] = []
        false_output: list[ExecutionItem] = []

        for idx, item in enumerate(context.get_input_data()):
            # An expression condition wins over field/operation/value
            condition = context.get_node_parameter("condition", idx, default="")
            if condition != "":
                result = bool(condition)
            else:
                field = context.get_node_parameter("field", idx, default="")
                operation = context.get_node_parameter("operation", idx, default="isTrue")
                value = context.get_node_parameter("value", idx, default=None)
                result = self._evaluate(self._get_nested_value(item.json, field), operation, value)

            if result:
                true_output.append(item)
            else:
                false_output.append(item)

        return self.outputs(true_output or None, false_output or None)

    def _evaluate(self, field_value: Any, operation: str, compare_value: Any) -> bool:
        """Evaluate the condition."""
        if operation == "equals":
            return field_value == compare_value
        elif operation == "notEquals":
            return field_value != compare_value
        elif operation == "contains":
            return str(compare_value) in str(field_value)
        elif operation == "notContains":
            return str(compare_value) not in str(field_value)
        elif operation in ("gt", "gte", "lt", "lte"):
            try:
                left, right = float(field_value), float(compare_value)
            except (ValueError, TypeError):
                return False
            return {
                "gt": left > right,
                "gte": left >= right,
                "lt": left < right,
                "lte": left <= right,
            }[operation]
        elif operation == "isEmpty":
            return field_value is None or field_value == "" or field_value == []
        elif operation == "isNotEmpty":
            return field_value is not None and field_value != "" and field_value != []
        elif operation == "isTrue":
            return field_value is True or field_value == "true" or field_value == 1
        elif operation == "isFalse":
            return field_value is False or field_value == "false" or field_value == 0
        elif operation == "regex":
            try:
                return bool(re.search(str(compare_value), str(field_value)))
            except re.error:
                return False
        return bool(field_value)

    def _get_nested_value(self, obj: dict[str, Any], path: str) -> Any:
        """Get value at nested path."""
        if not path:
            return obj
        current: Any = obj
        for key in path.split("."):
            if isinstance(current, dict):
                current = current.get(key)
            else:
                return None
        return current
