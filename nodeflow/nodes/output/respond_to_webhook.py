"""Respond to Webhook node - answer the request that started the run."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ..base import BaseNode, NodeTypeDescription

if TYPE_CHECKING:
    from ...engine.node_execute_functions import NodeExecutionContext
    from ..base import NodeExecutionResult


class RespondToWebhookNode(BaseNode):
    """Send a custom HTTP response back to the webhook caller."""

    node_description = NodeTypeDescription(
        name="RespondToWebhook",
        display_name="Respond to Webhook",
        description="Send a custom HTTP response back to the webhook caller",
        group=["output"],
    )

    async def execute(self, context: NodeExecutionContext) -> NodeExecutionResult:
        items = context.get_input_data()
        status_code = int(context.get_node_parameter("statusCode", default=200))
        respond_with = context.get_node_parameter("respondWith", default="firstIncomingItem")
        headers = context.get_node_parameter("headers", default={})

        body: Any
        if respond_with == "noData":
            body = None
        elif respond_with == "json":
            body = context.get_node_parameter("responseBody", default={})
        elif respond_with == "allIncomingItems":
            body = [item.json for item in items]
        else:
            body = items[0].json if items else {}

        await context.send_response(
            {"body": body, "headers": dict(headers or {}), "statusCode": status_code}
        )
        return self.output(items)
