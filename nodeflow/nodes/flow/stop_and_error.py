"""Stop and Error node - fail the workflow on purpose."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from ...core.exceptions import NodeExecutionError
from ..base import BaseNode, NodeOutputDefinition, NodeTypeDescription

if TYPE_CHECKING:
    from ...engine.node_execute_functions import NodeExecutionContext
    from ..base import NodeExecutionResult


class StopAndErrorNode(BaseNode):
    """Stop workflow execution with a custom error message."""

    node_description = NodeTypeDescription(
        name="StopAndError",
        display_name="Stop and Error",
        description="Stop workflow execution with a custom error message",
        group=["flow"],
        outputs=[NodeOutputDefinition(name="main", display_name="Output")],
    )

    async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
        error_type = context.get_node_parameter("errorType", default="errorMessage")

        if error_type == "errorObject":
            error_object = context.get_node_parameter("errorObject", default={})
            if isinstance(error_object, str):
                error_object = json.loads(error_object or "{}")
            message = error_object.get("message") or "Workflow stopped"
            description = error_object.get("description")
        else:
            message = str(context.get_node_parameter("message", default="Workflow stopped"))
            description = None

        raise NodeExecutionError(context.node.name, message, description=description)
