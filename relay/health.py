"""Health endpoint for Relay.

  GET /health: 503 before ``app.state.ready`` is set (during lifespan
  startup), 200 afterwards.

Response body (200):
    {
      "status": "ok" | "degraded",     # degraded: no admin credential active
      "adminConfigured": true | false,
      "configuredTarget": true | false
    }

Polled by container health probes; it never touches the upstream.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> Any:
    if not getattr(request.app.state, "ready", False):
        return JSONResponse(
            status_code=503,
            content={"status": "starting", "message": "Relay is starting up."},
        )

    state = request.app.state.relay
    admin_configured = state.credentials.is_active
    return {
        "status": "ok" if admin_configured else "degraded",
        "adminConfigured": admin_configured,
        "configuredTarget": state.target.get() is not None,
    }
