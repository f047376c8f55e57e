"""Live change notifications as a server-sent event stream."""
from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

from lmv.models import NotificationEvent
from lmv.routers.files import get_registry

events_router = APIRouter(prefix="/api", tags=["events"])


@events_router.get("/events")
async def stream_events(request: Request):
    """SSE endpoint; the first frame carries the current pending-refresh flag."""
    registry = get_registry(request)
    broadcaster = registry.broadcaster
    subscription = broadcaster.subscribe()
    initial = [NotificationEvent(type="ready", pendingRefresh=registry.pending_refresh)]
    return StreamingResponse(
        broadcaster.stream(subscription, initial),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
