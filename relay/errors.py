"""Error taxonomy for Relay.

Every failure surfaced to a caller is a ``RelayError`` subclass carrying an
HTTP status, a stable machine-readable ``code`` and a human-readable message.
The single exception handler registered in ``create_app()`` renders them as::

    {"error": "<code>", "message": "<message>"}

Raw exception text from the framework or stack traces are never returned.

Auth failures are ordered (see ``relay.auth.gate.authorize``):
  AdminTokenNotSetError (503) → MissingTokenError (401) → InvalidTokenError (403)
"""

from __future__ import annotations

from typing import Any

from fastapi.responses import JSONResponse


class RelayError(Exception):
    """Base class for errors rendered as structured JSON responses."""

    status_code: int = 500
    code: str = "internal_error"
    message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def body(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message}


# ─── Auth ─────────────────────────────────────────────────────────────────────


class AdminTokenNotSetError(RelayError):
    """No admin credential is active; admin operations and forwarding fail closed."""

    status_code = 503
    code = "admin_token_not_set"
    message = "Admin token is not configured on this server."


class MissingTokenError(RelayError):
    status_code = 401
    code = "missing_token"
    message = "Missing admin token. Send x-admin-token or Authorization: Bearer <token>."


class InvalidTokenError(RelayError):
    status_code = 403
    code = "invalid_token"
    message = "Invalid admin token."


# ─── Validation ───────────────────────────────────────────────────────────────


class InvalidTargetError(RelayError):
    status_code = 400
    code = "invalid_target"
    message = "Invalid or missing target. Must be a full http(s) URL."


class InvalidNewTokenError(RelayError):
    status_code = 400
    code = "invalid_new_token"
    message = "newToken must be a string of at least 16 characters."


class InvalidRequestError(RelayError):
    status_code = 400
    code = "invalid_request"
    message = "Malformed request body."


# ─── Forwarding ───────────────────────────────────────────────────────────────


class NoTargetConfiguredError(RelayError):
    status_code = 404
    code = "no_target_configured"
    message = "No target configured. Use /api/config with x-admin-token."


class UpstreamError(RelayError):
    """Transport failure before any upstream response was received."""

    status_code = 502
    code = "proxy_error"
    message = "Upstream request failed."


# ─── Routing / provisioning ───────────────────────────────────────────────────


class RouteNotFoundError(RelayError):
    status_code = 404
    code = "not_found"
    message = "Not found."


class SetupDisabledError(RelayError):
    """Provisioning is not enabled, or a credential is already active."""

    status_code = 404
    code = "setup_disabled"
    message = "Setup is disabled: an admin token is already configured or provisioning is off."


class SettingsWriteError(RelayError):
    status_code = 500
    code = "settings_write_failed"
    message = "Could not persist the admin token to the settings file."


def build_error_response(exc: RelayError) -> JSONResponse:
    """Render a ``RelayError`` as its JSON response."""
    return JSONResponse(status_code=exc.status_code, content=exc.body())
