"""Webhook service for handling webhook triggers."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..core.exceptions import ValidationError, WorkflowNotFoundError
from ..engine.execution_payload import WorkflowExecutionPayload
from ..engine.node_registry import node_registry
from ..engine.types import ExecutionStatus

if TYPE_CHECKING:
    from ..repositories import WorkflowRepository
    from .workflow_runner import WorkflowRunner


@dataclass
class WebhookResponse:
    """What goes back to the caller of a webhook."""

    body: Any
    status_code: int = 200
    headers: dict[str, str] = field(default_factory=dict)


class WebhookService:
    """Service for webhook operations."""

    def __init__(self, workflow_repo: WorkflowRepository, runner: WorkflowRunner) -> None:
        self._workflow_repo = workflow_repo
        self._runner = runner

    async def handle_webhook(
        self,
        workflow_id: str,
        method: str,
        body: Any,
        headers: dict[str, str],
        query_params: dict[str, str],
    ) -> WebhookResponse:
        """
        Start the workflow behind a webhook and build the HTTP response.

        ``responseMode`` of the Webhook node decides when we answer:
        ``onReceived`` right away, ``lastNode`` with the output of the last
        node, ``responseNode`` with whatever a Respond to Webhook node sends.
        """
        stored = await self._workflow_repo.get(workflow_id)
        if not stored:
            raise WorkflowNotFoundError(workflow_id)
        if not stored.active:
            raise ValidationError(f"Workflow {workflow_id} is not active", field="active")

        workflow = stored.workflow
        webhook_node = next((n for n in workflow.nodes if n.type == "Webhook" and not n.disabled), None)
        if webhook_node is None:
            raise ValidationError("Workflow has no Webhook trigger", field="nodes")

        allowed_method = str(webhook_node.parameters.get("method", "POST")).upper()
        if method.upper() != allowed_method:
            return WebhookResponse(
                body={"message": f"Method {method} not allowed for this webhook"}, status_code=405
            )

        node_type = node_registry.get(webhook_node.type, webhook_node.type_version)
        trigger_data = await node_type.webhook(
            {"body": body, "headers": headers, "query": query_params, "method": method}
        )

        response_mode = webhook_node.parameters.get("responseMode", "onReceived")
        response_future: asyncio.Future | None = None
        if response_mode == "responseNode":
            response_future = asyncio.get_running_loop().create_future()

        payload = WorkflowExecutionPayload(
            workflow=workflow,
            mode="webhook",
            start_node=webhook_node.name,
            trigger_data=trigger_data,
        )
        execution_id = await self._runner.run(payload, response_future=response_future)

        if response_mode == "responseNode":
            response = await response_future
            if response is None:
                return WebhookResponse(
                    body={"message": "Workflow executed successfully", "executionId": execution_id}
                )
            return WebhookResponse(
                body=response.get("body"),
                status_code=int(response.get("statusCode", 200)),
                headers=dict(response.get("headers") or {}),
            )

        if response_mode == "lastNode":
            state = await self._runner.active_executions.get_post_execute_future(execution_id)
            if state is None or state.status != ExecutionStatus.SUCCESS:
                message = state.error.message if state and state.error else "Workflow did not finish"
                return WebhookResponse(
                    body={"message": "Error in workflow", "error": message, "executionId": execution_id},
                    status_code=500,
                )
            last_node = state.data.result_data.last_node_executed
            tasks = state.run_data.get(last_node or "", [])
            items = (tasks[-1].data or [None])[0] if tasks else None
            return WebhookResponse(body=[item.json for item in items or []])

        return WebhookResponse(
            body={"message": "Workflow was started", "executionId": execution_id}
        )
