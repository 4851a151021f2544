"""Workflow repository for database persistence."""

from __future__ import annotations

import time
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from ..db.models import WorkflowModel
from ..engine.serialization import from_jsonable, to_jsonable
from ..engine.workflow import StoredWorkflow, Workflow


class WorkflowRepository:
    """Repository for workflow persistence."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, workflow: Workflow) -> StoredWorkflow:
        """Create a new workflow."""
        workflow.id = workflow.id or self._generate_id()
        now = datetime.now(timezone.utc)

        db_workflow = WorkflowModel(
            id=workflow.id,
            name=workflow.name,
            active=workflow.active,
            definition=to_jsonable(workflow, Workflow),
            created_at=now,
            updated_at=now,
        )

        self._session.add(db_workflow)
        await self._session.commit()
        await self._session.refresh(db_workflow)

        return self._to_stored_workflow(db_workflow)

    async def get(self, workflow_id: str) -> StoredWorkflow | None:
        """Get a workflow by ID."""
        result = await self._session.get(WorkflowModel, workflow_id)
        if not result:
            return None
        return self._to_stored_workflow(result)

    async def list(self) -> list[StoredWorkflow]:
        """List all workflows."""
        statement = select(WorkflowModel).order_by(WorkflowModel.updated_at.desc())
        result = await self._session.execute(statement)
        workflows = result.scalars().all()
        return [self._to_stored_workflow(w) for w in workflows]

    async def update(self, workflow_id: str, workflow: Workflow) -> StoredWorkflow | None:
        """Replace the definition of an existing workflow."""
        db_workflow = await self._session.get(WorkflowModel, workflow_id)
        if not db_workflow:
            return None

        workflow.id = workflow_id
        db_workflow.name = workflow.name or db_workflow.name
        db_workflow.active = workflow.active
        db_workflow.definition = to_jsonable(workflow, Workflow)
        db_workflow.updated_at = datetime.now(timezone.utc)

        await self._session.commit()
        await self._session.refresh(db_workflow)

        return self._to_stored_workflow(db_workflow)

    async def set_active(self, workflow_id: str, active: bool) -> StoredWorkflow | None:
        """Set workflow active state."""
        db_workflow = await self._session.get(WorkflowModel, workflow_id)
        if not db_workflow:
            return None

        db_workflow.active = active
        db_workflow.definition = {**db_workflow.definition, "active": active}
        db_workflow.updated_at = datetime.now(timezone.utc)
        await self._session.commit()
        await self._session.refresh(db_workflow)

        return self._to_stored_workflow(db_workflow)

    async def update_static_data(self, workflow_id: str, static_data: dict[str, Any]) -> bool:
        """Persist static data written by a successful run (last writer wins)."""
        db_workflow = await self._session.get(WorkflowModel, workflow_id)
        if not db_workflow:
            return False

        # Reassign so SQLAlchemy notices the JSON change
        db_workflow.definition = {**db_workflow.definition, "static_data": static_data}
        await self._session.commit()
        return True

    async def delete(self, workflow_id: str) -> bool:
        """Delete a workflow."""
        db_workflow = await self._session.get(WorkflowModel, workflow_id)
        if not db_workflow:
            return False

        await self._session.delete(db_workflow)
        await self._session.commit()
        return True

    def _generate_id(self) -> str:
        """Generate a unique workflow ID."""
        return f"wf_{int(time.time() * 1000)}_{uuid.uuid4().hex[:7]}"

    def _to_stored_workflow(self, db_workflow: WorkflowModel) -> StoredWorkflow:
        """Convert database model to StoredWorkflow."""
        workflow = from_jsonable(db_workflow.definition, Workflow)
        workflow.id = db_workflow.id
        workflow.active = db_workflow.active

        return StoredWorkflow(
            id=db_workflow.id,
            name=db_workflow.name,
            workflow=workflow,
            active=db_workflow.active,
            created_at=db_workflow.created_at,
            updated_at=db_workflow.updated_at,
        )
