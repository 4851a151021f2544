"""Set node - set, rename, or delete fields on items."""

from __future__ import annotations

import copy
import json
from typing import TYPE_CHECKING, Any

from ...engine.types import ExecutionItem, PairedItem
from ..base import BaseNode, NodeTypeDescription

if TYPE_CHECKING:
    from ...engine.node_execute_functions import NodeExecutionContext
    from ..base import NodeExecutionResult


class SetNode(BaseNode):
    """Set node - set, rename, or delete fields on items."""

    node_description = NodeTypeDescription(
        name="Set",
        display_name="Set",
        description="Set, rename, or delete fields on items",
        group=["transform"],
    )

    async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
        results: list[ExecutionItem] = []
        items = context.get_input_data() or [ExecutionItem()]

        for idx, item in enumerate(items):
            try:
                results.append(self._set_item(context, item, idx))
            except Exception as e:
                if not context.continue_on_fail():
                    raise
                results.append(ExecutionItem(json={"error": str(e)}, paired_item=PairedItem(item=idx)))

        return self.output(results)

    def _set_item(self, context: NodeExecutionContext, item: ExecutionItem, idx: int) -> ExecutionItem:
        mode = context.get_node_parameter("mode", idx, default="manual")
        keep_only_set = context.get_node_parameter("keepOnlySet", idx, default=False)
        new_json: dict[str, Any] = {} if keep_only_set else copy.deepcopy(item.json)

        if mode == "manual":
            for field in context.get_node_parameter("fields", idx, default=[]):
                if field.get("name"):
                    self._set_nested_value(new_json, field["name"], field.get("value"))

        elif mode == "json":
            json_data = context.get_node_parameter("jsonData", idx, default={})
            if isinstance(json_data, str):
                json_data = json.loads(json_data) if json_data.strip() else {}
            if not isinstance(json_data, dict):
                raise ValueError("JSON data must be an object")
            new_json.update(json_data)

        for field in context.get_node_parameter("deleteFields", idx, default=[]):
            field_path = field.get("path") if isinstance(field, dict) else field
            if field_path:
                self._delete_nested_value(new_json, field_path)

        for rename in context.get_node_parameter("renameFields", idx, default=[]):
            from_path = rename.get("from", "")
            to_path = rename.get("to", "")
            if from_path and to_path:
                value = self._get_nested_value(new_json, from_path)
                if value is not None:
                    self._delete_nested_value(new_json, from_path)
                    self._set_nested_value(new_json, to_path, value)

        return ExecutionItem(json=new_json, binary=item.binary, paired_item=PairedItem(item=idx))

    def _get_nested_value(self, obj: dict[str, Any], path: str) -> Any:
        current: Any = obj
        for key in path.split("."):
            if isinstance(current, dict):
                current = current.get(key)
            else:
                return None
        return current

    def _set_nested_value(self, obj: dict[str, Any], path: str, value: Any) -> None:
        """Set value at nested path, creating intermediate objects as needed."""
        keys = path.split(".")
        current = obj

        for key in keys[:-1]:
            if key not in current or not isinstance(current[key], dict):
                current[key] = {}
            current = current[key]

        current[keys[-1]] = value

    def _delete_nested_value(self, obj: dict[str, Any], path: str) -> None:
        keys = path.split(".")
        current = obj

        for key in keys[:-1]:
            if key not in current or not isinstance(current[key], dict):
                return
            current = current[key]

        current.pop(keys[-1], None)
