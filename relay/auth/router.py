"""Admin API endpoints for Relay.

Provides (mounted under /api):
  GET  /api/info                — public: admin/target status + setup guidance
  POST /api/config              — admin: set the upstream target
  GET  /api/status              — admin: current target
  POST /api/change-admin-token  — admin: replace the credential in memory
  POST /api/setup               — public, only while no credential is active
                                  and only in file_fallback mode: provision and
                                  persist the credential

Admin endpoints depend on ``require_admin`` so an auth failure short-circuits
the handler before any state is read or mutated. Validation failures never
mutate state.

The request bodies accept any JSON value for their fields: a missing or
non-string ``target`` / ``newToken`` is a 400 with a stable code, not a
framework validation error.
"""

import asyncio
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field

from relay.auth.gate import require_admin
from relay.auth.limiter import ADMIN_RATE_LIMIT, limiter
from relay.constants import ADMIN_TOKEN_ENV, PROXY_PATH
from relay.state import RelayState
from relay.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["admin"])


# ─── Request Models ───────────────────────────────────────────────────────────


class TargetRequest(BaseModel):
    """Request body for POST /api/config."""

    target: Any = None


class NewTokenRequest(BaseModel):
    """Request body for POST /api/change-admin-token and POST /api/setup."""

    model_config = ConfigDict(populate_by_name=True)

    new_token: Any = Field(default=None, alias="newToken")


def _state(request: Request) -> RelayState:
    return request.app.state.relay


# ─── Endpoints ────────────────────────────────────────────────────────────────


@router.get("/info")
async def get_info(request: Request) -> dict:
    """Public status for the UI.

    Returns:
        JSON: {adminConfigured, configuredTarget, target, instructions, setupAvailable}
        ``instructions`` is null once a credential is active.
    """
    state = _state(request)
    target = state.target.get()
    return {
        "adminConfigured": state.credentials.is_active,
        "configuredTarget": target is not None,
        "target": target,
        "instructions": state.credentials.instructions(),
        "setupAvailable": state.credentials.setup_available,
    }


@router.post("/config", dependencies=[Depends(require_admin)])
@limiter.limit(ADMIN_RATE_LIMIT)
async def set_target(request: Request, body: Optional[TargetRequest] = None) -> dict:
    """Set the upstream target for this instance.

    Repeating the call with the same URL is a no-op.

    Raises:
        HTTP 400 invalid_target: not an absolute http(s) URL; target unchanged.
    """
    state = _state(request)
    accepted = state.target.set(body.target if body else None)
    logger.info("Configured proxy target", target=accepted)
    return {
        "message": "target set",
        "proxyPath": PROXY_PATH,
        "target": accepted,
    }


@router.get("/status", dependencies=[Depends(require_admin)])
async def get_status(request: Request) -> dict:
    target = _state(request).target.get()
    return {
        "configured": target is not None,
        "target": target,
    }


@router.post("/change-admin-token", dependencies=[Depends(require_admin)])
@limiter.limit(ADMIN_RATE_LIMIT)
async def change_admin_token(request: Request, body: Optional[NewTokenRequest] = None) -> dict:
    """Replace the admin credential for the life of this process.

    The previous token stops working immediately. Nothing is persisted: a
    restart reverts to the startup token.

    Raises:
        HTTP 400 invalid_new_token: fewer than 16 characters or not a string.
    """
    _state(request).credentials.replace(body.new_token if body else None)
    return {
        "message": "admin token updated",
        "note": (
            "The new token is held in memory only. Restarting the server reverts "
            f"to the startup token ({ADMIN_TOKEN_ENV})."
        ),
    }


@router.post("/setup")
@limiter.limit(ADMIN_RATE_LIMIT)
async def setup(request: Request, body: Optional[NewTokenRequest] = None) -> dict:
    """Provision the first admin credential and persist it to the settings file.

    Raises:
        HTTP 404 setup_disabled:        a credential is active, or not file_fallback mode.
        HTTP 400 invalid_new_token:     fewer than 16 characters or not a string.
        HTTP 500 settings_write_failed: settings file not writable; nothing activated.
    """
    # provision() writes the settings file under the store lock; a worker
    # thread keeps that blocking I/O off the event loop.
    await asyncio.to_thread(
        _state(request).credentials.provision, body.new_token if body else None
    )
    return {
        "message": "admin token configured",
        "persisted": True,
    }
