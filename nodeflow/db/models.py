"""SQLModel database models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, TypeDecorator
from sqlmodel import Column, Field, SQLModel

from ..engine.types import utc_now


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime stored as UTC; naive values are taken as UTC."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            # SQLite drops the offset on storage
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class WorkflowModel(SQLModel, table=True):
    """Workflow database model."""

    __tablename__ = "workflows"

    id: str = Field(primary_key=True)
    name: str = Field(index=True)
    active: bool = Field(default=False, index=True)

    # Full workflow definition: nodes, connections, settings, static data, pin data
    definition: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime)


class ExecutionModel(SQLModel, table=True):
    """Execution database model."""

    __tablename__ = "executions"

    id: str = Field(primary_key=True)
    workflow_id: str | None = Field(default=None, index=True)
    workflow_name: str = ""

    status: str = Field(index=True)  # new, running, waiting, success, error, canceled
    mode: str
    finished: bool = Field(default=False)
    retry_of: str | None = Field(default=None)
    parent_execution_id: str | None = Field(default=None, index=True)

    # Graph the run executes against, so a resumed run sees the same workflow
    workflow_data: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    # Serialized RunExecutionData
    data: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))

    started_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime, index=True)
    stopped_at: datetime | None = Field(default=None, sa_type=UTCDateTime)
    # Set while the execution is parked; the wait tracker resumes it then
    sleep_till: datetime | None = Field(default=None, sa_type=UTCDateTime, index=True)
