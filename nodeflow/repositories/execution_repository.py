"""Execution repository for database persistence."""

from __future__ import annotations

import time
import uuid
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from ..db.models import ExecutionModel
from ..engine.serialization import from_jsonable, to_jsonable
from ..engine.types import ExecutionState, ExecutionStatus, RunExecutionData
from ..engine.workflow import ExecutionRecord, Workflow

_ACTIVE_STATUSES = (
    ExecutionStatus.NEW.value,
    ExecutionStatus.RUNNING.value,
    ExecutionStatus.WAITING.value,
)


class ExecutionRepository:
    """Repository for execution persistence."""

    def __init__(self, session: AsyncSession, max_records: int = 1000) -> None:
        self._session = session
        self._max_records = max_records

    async def create(
        self,
        workflow: Workflow,
        state: ExecutionState,
        execution_id: str | None = None,
        retry_of: str | None = None,
        parent_execution_id: str | None = None,
    ) -> ExecutionRecord:
        """Create the record of a run that is about to start."""
        db_execution = ExecutionModel(
            id=execution_id or self._generate_id(),
            workflow_id=workflow.id,
            workflow_name=workflow.name,
            mode=state.mode,
            retry_of=retry_of,
            parent_execution_id=parent_execution_id,
            workflow_data=to_jsonable(workflow, Workflow),
        )
        self._apply_state(db_execution, state)

        self._session.add(db_execution)
        await self._session.commit()
        await self._session.refresh(db_execution)

        await self._cleanup()

        return self._to_execution_record(db_execution)

    async def update(
        self, execution_id: str, state: ExecutionState, workflow: Workflow | None = None
    ) -> ExecutionRecord | None:
        """Store the current state of a run."""
        db_execution = await self._session.get(ExecutionModel, execution_id)
        if not db_execution:
            return None

        self._apply_state(db_execution, state)
        if workflow is not None:
            db_execution.workflow_data = to_jsonable(workflow, Workflow)

        await self._session.commit()
        await self._session.refresh(db_execution)

        return self._to_execution_record(db_execution)

    async def get(self, execution_id: str) -> ExecutionRecord | None:
        """Get an execution record by ID."""
        db_execution = await self._session.get(ExecutionModel, execution_id)
        if not db_execution:
            return None
        return self._to_execution_record(db_execution)

    async def find_waiting(self, until: datetime) -> list[ExecutionRecord]:
        """Parked executions due no later than ``until``, soonest first."""
        statement = (
            select(ExecutionModel)
            .where(ExecutionModel.sleep_till.is_not(None))
            .where(ExecutionModel.sleep_till <= until)
            .where(ExecutionModel.finished == False)  # noqa: E712
            .order_by(ExecutionModel.sleep_till.asc())
        )
        result = await self._session.execute(statement)
        return [self._to_execution_record(e) for e in result.scalars().all()]

    async def list(
        self,
        workflow_id: str | None = None,
        status: ExecutionStatus | None = None,
    ) -> list[ExecutionRecord]:
        """List execution records, newest first."""
        statement = select(ExecutionModel).order_by(ExecutionModel.started_at.desc())

        if workflow_id:
            statement = statement.where(ExecutionModel.workflow_id == workflow_id)
        if status is not None:
            statement = statement.where(ExecutionModel.status == status.value)

        result = await self._session.execute(statement)
        executions = result.scalars().all()

        return [self._to_execution_record(e) for e in executions]

    async def delete(self, execution_id: str) -> bool:
        """Delete an execution record."""
        db_execution = await self._session.get(ExecutionModel, execution_id)
        if not db_execution:
            return False

        await self._session.delete(db_execution)
        await self._session.commit()
        return True

    async def _cleanup(self) -> None:
        """Remove the oldest finished records if over max."""
        statement = (
            select(ExecutionModel)
            .where(ExecutionModel.status.not_in(_ACTIVE_STATUSES))
            .order_by(ExecutionModel.started_at.desc())
        )
        result = await self._session.execute(statement)
        executions = result.scalars().all()

        if len(executions) > self._max_records:
            for execution in executions[self._max_records:]:
                await self._session.delete(execution)
            await self._session.commit()

    def _apply_state(self, db_execution: ExecutionModel, state: ExecutionState) -> None:
        db_execution.status = state.status.value
        db_execution.mode = state.mode
        db_execution.finished = state.finished
        db_execution.started_at = state.started_at
        db_execution.stopped_at = state.stopped_at
        db_execution.sleep_till = state.wait_till
        db_execution.data = to_jsonable(state.data, RunExecutionData)

    def _generate_id(self) -> str:
        """Generate unique execution ID."""
        return f"exec_{int(time.time() * 1000)}_{uuid.uuid4().hex[:7]}"

    def _to_execution_record(self, db_execution: ExecutionModel) -> ExecutionRecord:
        """Convert database model to ExecutionRecord."""
        data = from_jsonable(db_execution.data, RunExecutionData)
        state = ExecutionState(
            mode=db_execution.mode,  # type: ignore[arg-type]
            started_at=db_execution.started_at,
            status=ExecutionStatus(db_execution.status),
            data=data,
            stopped_at=db_execution.stopped_at,
            finished=db_execution.finished,
            wait_till=db_execution.sleep_till,
        )
        return ExecutionRecord(
            id=db_execution.id,
            workflow_id=db_execution.workflow_id,
            workflow_data=from_jsonable(db_execution.workflow_data, Workflow),
            state=state,
            retry_of=db_execution.retry_of,
            parent_execution_id=db_execution.parent_execution_id,
        )
