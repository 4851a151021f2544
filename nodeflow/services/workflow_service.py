"""Workflow service for business logic."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from ..core.exceptions import WorkflowNotFoundError
from ..engine.execution_payload import WorkflowExecutionPayload
from ..engine.serialization import from_jsonable, to_jsonable
from ..engine.types import ExecutionItem, RunData
from ..engine.workflow import Connection, NodeDefinition, Workflow, WorkflowSettings
from ..schemas.execution import ExecutionResponse, RunWorkflowRequest
from ..schemas.workflow import (
    WorkflowActiveResponse,
    WorkflowCreateRequest,
    WorkflowDetailResponse,
    WorkflowListItem,
    WorkflowResponse,
    WorkflowUpdateRequest,
)
from .execution_service import build_execution_response

if TYPE_CHECKING:
    from ..repositories import WorkflowRepository
    from .workflow_runner import WorkflowRunner


class WorkflowService:
    """Service for workflow operations."""

    def __init__(self, workflow_repo: WorkflowRepository, runner: WorkflowRunner) -> None:
        self._workflow_repo = workflow_repo
        self._runner = runner

    async def list_workflows(self) -> list[WorkflowListItem]:
        """List all workflows."""
        workflows = await self._workflow_repo.list()
        return [
            WorkflowListItem(
                id=w.id,
                name=w.name,
                active=w.active,
                webhook_url=f"/webhook/{w.id}",
                node_count=len(w.workflow.nodes),
                created_at=w.created_at.isoformat(),
                updated_at=w.updated_at.isoformat(),
            )
            for w in workflows
        ]

    async def get_workflow(self, workflow_id: str) -> WorkflowDetailResponse:
        """Get a workflow by ID."""
        stored = await self._workflow_repo.get(workflow_id)
        if not stored:
            raise WorkflowNotFoundError(workflow_id)

        return WorkflowDetailResponse(
            id=stored.id,
            name=stored.name,
            active=stored.active,
            webhook_url=f"/webhook/{stored.id}",
            definition=to_jsonable(stored.workflow, Workflow),
            created_at=stored.created_at.isoformat(),
            updated_at=stored.updated_at.isoformat(),
        )

    async def create_workflow(self, request: WorkflowCreateRequest) -> WorkflowResponse:
        """Create a new workflow."""
        workflow = self._request_to_workflow(request)
        workflow.validate()
        stored = await self._workflow_repo.create(workflow)

        return WorkflowResponse(
            id=stored.id,
            name=stored.name,
            active=stored.active,
            webhook_url=f"/webhook/{stored.id}",
            created_at=stored.created_at.isoformat(),
        )

    async def update_workflow(
        self, workflow_id: str, request: WorkflowUpdateRequest
    ) -> WorkflowDetailResponse:
        """Update an existing workflow."""
        existing = await self._workflow_repo.get(workflow_id)
        if not existing:
            raise WorkflowNotFoundError(workflow_id)

        current = existing.workflow
        workflow = Workflow(
            name=request.name or current.name,
            nodes=self._nodes(request.nodes) if request.nodes is not None else current.nodes,
            connections=(
                self._connections(request.connections)
                if request.connections is not None
                else current.connections
            ),
            id=workflow_id,
            active=current.active,
            settings=(
                WorkflowSettings(**request.settings.model_dump())
                if request.settings is not None
                else current.settings
            ),
            static_data=current.static_data,
            pin_data=self._pin_data(request.pin_data) if request.pin_data is not None else current.pin_data,
        )
        workflow.validate()

        await self._workflow_repo.update(workflow_id, workflow)
        return await self.get_workflow(workflow_id)

    async def delete_workflow(self, workflow_id: str) -> bool:
        """Delete a workflow."""
        deleted = await self._workflow_repo.delete(workflow_id)
        if not deleted:
            raise WorkflowNotFoundError(workflow_id)
        return True

    async def set_active(self, workflow_id: str, active: bool) -> WorkflowActiveResponse:
        """Set workflow active state."""
        updated = await self._workflow_repo.set_active(workflow_id, active)
        if not updated:
            raise WorkflowNotFoundError(workflow_id)

        return WorkflowActiveResponse(id=updated.id, active=updated.active)

    async def run_workflow(
        self, workflow_id: str, request: RunWorkflowRequest | None = None
    ) -> ExecutionResponse:
        """Run a saved workflow, fully or partially."""
        stored = await self._workflow_repo.get(workflow_id)
        if not stored:
            raise WorkflowNotFoundError(workflow_id)
        return await self._run(stored.workflow, request or RunWorkflowRequest())

    async def run_adhoc_workflow(
        self, request: WorkflowCreateRequest, run: RunWorkflowRequest | None = None
    ) -> ExecutionResponse:
        """Run an ad-hoc workflow without saving."""
        workflow = self._request_to_workflow(request)
        workflow.validate()
        return await self._run(workflow, run or RunWorkflowRequest())

    async def _run(self, workflow: Workflow, request: RunWorkflowRequest) -> ExecutionResponse:
        if request.input_data is not None:
            trigger_data = [ExecutionItem(json=item) for item in request.input_data]
        else:
            trigger_data = [
                ExecutionItem(json={"triggeredAt": datetime.now(timezone.utc).isoformat(), "mode": "manual"})
            ]

        payload = WorkflowExecutionPayload(
            workflow=workflow,
            mode="manual",
            start_node=request.start_node,
            start_nodes=request.start_nodes,
            run_data=from_jsonable(request.run_data, RunData) if request.run_data else None,
            destination_node=request.destination_node,
            pin_data=self._pin_data(request.pin_data),
            trigger_data=trigger_data,
        )

        if not request.wait:
            execution_id = await self._runner.run(payload)
            return ExecutionResponse(execution_id=execution_id, status="new")

        execution_id, state = await self._runner.run_and_wait(payload)
        return build_execution_response(execution_id, state)

    def _request_to_workflow(self, request: WorkflowCreateRequest) -> Workflow:
        """Convert request to internal Workflow type."""
        return Workflow(
            name=request.name,
            nodes=self._nodes(request.nodes),
            connections=self._connections(request.connections),
            active=request.active,
            settings=WorkflowSettings(**request.settings.model_dump()),
            static_data=dict(request.static_data),
            pin_data=self._pin_data(request.pin_data),
        )

    def _nodes(self, nodes: list[Any]) -> list[NodeDefinition]:
        return [NodeDefinition(**n.model_dump()) for n in nodes]

    def _connections(self, connections: list[Any]) -> list[Connection]:
        return [Connection(**c.model_dump()) for c in connections]

    def _pin_data(
        self, pin_data: dict[str, list[dict[str, Any]]] | None
    ) -> dict[str, list[ExecutionItem]] | None:
        if pin_data is None:
            return None
        return {
            name: [ExecutionItem(json=item.get("json", item)) for item in items]
            for name, items in pin_data.items()
        }
