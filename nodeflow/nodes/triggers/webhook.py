"""Webhook node - start a workflow from an incoming HTTP request."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from ...engine.types import ExecutionItem
from ..base import BaseNode, NodeKind, NodeOutputDefinition, NodeTypeDescription


class WebhookNode(BaseNode):
    """Webhook node - turns the request into the first item of the run."""

    kind = NodeKind.WEBHOOK
    node_description = NodeTypeDescription(
        name="Webhook",
        display_name="Webhook",
        description="Trigger workflow via HTTP webhook",
        group=["trigger"],
        inputs=[],
        outputs=[NodeOutputDefinition(name="main", display_name="Output")],
    )

    async def webhook(self, request_data: dict[str, Any]) -> list[ExecutionItem]:
        return [
            ExecutionItem(
                json={
                    "body": request_data.get("body", {}),
                    "headers": request_data.get("headers", {}),
                    "query": request_data.get("query", {}),
                    "method": request_data.get("method", "POST"),
                    "triggeredAt": datetime.now(timezone.utc).isoformat(),
                }
            )
        ]
