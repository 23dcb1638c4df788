"""Server-Sent Events stream of transfer and payout milestones."""

import json

from fastapi import APIRouter, Depends, Request
from sse_starlette.sse import EventSourceResponse

from settlement.api.deps import require_service_token
from settlement.core.events import event_bus
from settlement.core.security import AuthClaims

router = APIRouter()


@router.get("/events")
async def event_stream(request: Request, claims: AuthClaims = Depends(require_service_token)):
    """
    Stream milestone events to the notification dispatcher.

    Usage:
        curl -N -H "Authorization: Bearer $TOKEN" /api/internal/events
        event: payout.completed
        data: {"payout_id": "...", "transfer_id": "..."}
    """
    async def generate():
        async for event in event_bus.subscribe():
            if await request.is_disconnected():
                break

            yield {
                "event": event["type"],
                "data": json.dumps(event["data"])
            }

    return EventSourceResponse(generate())
