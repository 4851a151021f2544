"""FastAPI dependency injection for the workflow engine."""

from __future__ import annotations

from functools import lru_cache
from typing import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from .config import settings


# --- Database Session Dependency ---


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get async database session."""
    from ..db import get_session

    async for session in get_session():
        yield session


# --- Repository Dependencies ---


def get_workflow_repository(session: AsyncSession = Depends(get_db_session)):
    """Get workflow repository instance."""
    from ..repositories import WorkflowRepository

    return WorkflowRepository(session)


def get_execution_repository(session: AsyncSession = Depends(get_db_session)):
    """Get execution repository instance."""
    from ..repositories import ExecutionRepository

    return ExecutionRepository(session, max_records=settings.max_execution_records)


@lru_cache
def get_node_registry():
    """Get node registry instance."""
    from ..engine.node_registry import node_registry

    return node_registry


# --- Process-wide runtime ---


@lru_cache
def get_active_executions():
    """Get the registry of running executions."""
    from ..services.active_executions import ActiveExecutions

    return ActiveExecutions()


@lru_cache
def get_push_service():
    """Get the SSE push service."""
    from ..services.push_service import PushService

    return PushService()


@lru_cache
def get_workflow_runner():
    """Get the execution coordinator."""
    from ..services.workflow_runner import WorkflowRunner

    return WorkflowRunner(get_active_executions(), get_push_service())


@lru_cache
def get_wait_tracker():
    """Get the tracker that resumes waiting executions."""
    from ..services.wait_tracker import WaitTracker

    return WaitTracker(get_workflow_runner())


# --- Service Dependencies ---


def get_workflow_service(
    workflow_repo=Depends(get_workflow_repository),
    runner=Depends(get_workflow_runner),
):
    """Get workflow service instance."""
    from ..services.workflow_service import WorkflowService

    return WorkflowService(workflow_repo, runner)


def get_execution_service(
    execution_repo=Depends(get_execution_repository),
    runner=Depends(get_workflow_runner),
    wait_tracker=Depends(get_wait_tracker),
):
    """Get execution service instance."""
    from ..services.execution_service import ExecutionService

    return ExecutionService(execution_repo, runner, wait_tracker)


def get_webhook_service(
    workflow_repo=Depends(get_workflow_repository),
    runner=Depends(get_workflow_runner),
):
    """Get webhook service instance."""
    from ..services.webhook_service import WebhookService

    return WebhookService(workflow_repo, runner)


def get_node_service(
    node_registry=Depends(get_node_registry),
):
    """Get node service instance."""
    from ..services.node_service import NodeService

    return NodeService(node_registry)
