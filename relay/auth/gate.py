"""Admin auth gate for Relay.

``authorize()`` is the guard every privileged operation runs first;
``require_admin()`` wraps it as a FastAPI Depends()-compatible dependency so a
failed check short-circuits the handler before any state is read or mutated.

Failure ordering is a contract: callers distinguish "not configured" from
"caller error" from "wrong secret":

  1. store inactive          → 503 admin_token_not_set (regardless of headers)
  2. header absent / empty   → 401 missing_token
  3. strip "Bearer " prefix  (exact, case-sensitive, 7 characters)
  4. value does not match    → 403 invalid_token

Header extraction precedence:
  1. x-admin-token: <token>
  2. Authorization: Bearer <token>   (or a raw token in Authorization)
"""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from relay.auth.credentials import CredentialStore
from relay.constants import ADMIN_TOKEN_HEADER, AUTHORIZATION_HEADER, BEARER_PREFIX
from relay.errors import AdminTokenNotSetError, InvalidTokenError, MissingTokenError
from relay.utils.logger import get_logger

logger = get_logger(__name__)


def extract_admin_header(headers) -> Optional[str]:
    """Return the raw credential header value, or None if neither header is set."""
    return headers.get(ADMIN_TOKEN_HEADER) or headers.get(AUTHORIZATION_HEADER) or None


def strip_bearer(value: str) -> str:
    if value.startswith(BEARER_PREFIX):
        return value[len(BEARER_PREFIX):]
    return value


def authorize(store: CredentialStore, header: Optional[str]) -> None:
    """Raise the appropriate auth error, or return None on success."""
    if not store.is_active:
        raise AdminTokenNotSetError()
    if not header:
        raise MissingTokenError()
    if not store.matches(strip_bearer(header)):
        raise InvalidTokenError()


async def require_admin(request: Request) -> None:
    """FastAPI dependency: admit the request only with a valid admin credential."""
    store: CredentialStore = request.app.state.relay.credentials
    try:
        authorize(store, extract_admin_header(request.headers))
    except (AdminTokenNotSetError, MissingTokenError, InvalidTokenError) as exc:
        logger.warning(
            "Admin authentication failed",
            reason=exc.code,
            path=str(request.url.path),
            method=request.method,
        )
        raise
