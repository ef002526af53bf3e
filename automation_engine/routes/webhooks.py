"""Webhook routes for triggering workflows."""

from __future__ import annotations

import json
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Request

from ..core.dependencies import EngineContainer, get_container
from ..schemas.execution import TriggerEventResponse

router = APIRouter()


def _parse_body(raw: bytes) -> Any:
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError):
        return raw.decode("utf-8", errors="replace")


@router.post("/webhooks/{path:path}", response_model=TriggerEventResponse)
async def handle_webhook(
    path: str,
    request: Request,
    container: Annotated[EngineContainer, Depends(get_container)],
) -> TriggerEventResponse:
    """Handle an incoming webhook and deliver it to the named trigger."""
    header = container.settings.webhook_trigger_header
    trigger_key = request.headers.get(header) or request.query_params.get("trigger")
    if not trigger_key:
        raise HTTPException(
            status_code=400,
            detail=f"Trigger key required in the {header} header or the trigger query parameter",
        )

    raw_body = await request.body()
    return await container.execution_service.handle_webhook(
        trigger_key,
        url=str(request.url),
        method=request.method,
        headers=dict(request.headers),
        body=_parse_body(raw_body),
        query=dict(request.query_params),
        raw_body=raw_body,
    )
