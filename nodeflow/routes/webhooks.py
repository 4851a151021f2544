"""Webhook routes for triggering workflows."""

from __future__ import annotations

import json
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from ..core.dependencies import get_webhook_service
from ..core.exceptions import ValidationError, WorkflowNotFoundError
from ..services.webhook_service import WebhookService

router = APIRouter()

WebhookServiceDep = Annotated[WebhookService, Depends(get_webhook_service)]


async def _read_body(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except ValueError:
        return raw.decode(errors="replace")


@router.api_route("/webhook/{workflow_id}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
async def handle_webhook(
    workflow_id: str,
    request: Request,
    service: WebhookServiceDep,
) -> JSONResponse:
    """Handle an incoming webhook to trigger a workflow."""
    try:
        response = await service.handle_webhook(
            workflow_id,
            request.method,
            await _read_body(request),
            dict(request.headers),
            dict(request.query_params),
        )
    except WorkflowNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)

    return JSONResponse(
        content=response.body,
        status_code=response.status_code,
        headers=response.headers or None,
    )
