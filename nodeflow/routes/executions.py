"""Execution routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query

from ..core.exceptions import ExecutionNotFoundError, ValidationError
from ..core.dependencies import get_execution_service
from ..engine.types import ExecutionStatus
from ..services.execution_service import ExecutionService
from ..schemas.execution import (
    ExecutionDetailResponse,
    ExecutionListItem,
    ExecutionResponse,
    StopExecutionResponse,
)
from ..schemas.common import SuccessResponse

router = APIRouter(prefix="/executions")


# Type alias for dependency injection
ExecutionServiceDep = Annotated[ExecutionService, Depends(get_execution_service)]


@router.get("", response_model=list[ExecutionListItem])
async def list_executions(
    service: ExecutionServiceDep,
    workflow_id: str | None = Query(None, description="Filter by workflow ID"),
    status: ExecutionStatus | None = Query(None, description="Filter by status"),
) -> list[ExecutionListItem]:
    """List execution history."""
    return await service.list_executions(workflow_id, status)


@router.get("/{execution_id}", response_model=ExecutionDetailResponse)
async def get_execution(
    execution_id: str,
    service: ExecutionServiceDep,
) -> ExecutionDetailResponse:
    """Get execution details."""
    try:
        return await service.get_execution(execution_id)
    except ExecutionNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.post("/{execution_id}/stop", response_model=StopExecutionResponse)
async def stop_execution(
    execution_id: str,
    service: ExecutionServiceDep,
) -> StopExecutionResponse:
    """Stop a running or waiting execution."""
    try:
        return await service.stop_execution(execution_id)
    except ExecutionNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.post("/{execution_id}/retry", response_model=ExecutionResponse)
async def retry_execution(
    execution_id: str,
    service: ExecutionServiceDep,
) -> ExecutionResponse:
    """Retry a failed execution from the node that failed."""
    try:
        return await service.retry_execution(execution_id)
    except ExecutionNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)


@router.delete("/{execution_id}", response_model=SuccessResponse)
async def delete_execution(
    execution_id: str,
    service: ExecutionServiceDep,
) -> SuccessResponse:
    """Delete an execution record."""
    try:
        await service.delete_execution(execution_id)
        return SuccessResponse(message="Execution deleted")
    except ExecutionNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
