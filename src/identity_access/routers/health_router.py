from __future__ import annotations

from fastapi import APIRouter, Request

from identity_access.utils.response import success

router = APIRouter()


@router.get("/health")
async def health(request: Request) -> dict:
    """Liveness only; a broker outage is reported, not treated as unhealthy."""
    events = getattr(request.app.state, "events", None)
    broker = "connected" if events is not None and events.is_connected else "disconnected"
    return success({"ok": True, "broker": broker}, message="healthy")
