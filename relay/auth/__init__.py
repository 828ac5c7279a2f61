"""Relay admin credential package.

Public API:
  - CredentialStore          — the one admin credential + its provenance
  - create_credential_store() — startup resolution (env → settings file → mode policy)
  - Provenance               — where the active credential came from
  - is_acceptable_token()    — 16+ character string check for new tokens
  - authorize()              — ordered 503 → 401 → 403 check
  - require_admin()          — FastAPI Depends() dependency for admin endpoints
  - SettingsFile             — dotenv-format persistence for /api/setup
"""

from __future__ import annotations

from relay.auth.credentials import (
    CredentialSnapshot,
    CredentialStore,
    Provenance,
    create_credential_store,
    is_acceptable_token,
)
from relay.auth.gate import authorize, require_admin
from relay.auth.settings import SettingsFile

__all__ = [
    "CredentialSnapshot",
    "CredentialStore",
    "Provenance",
    "SettingsFile",
    "authorize",
    "create_credential_store",
    "is_acceptable_token",
    "require_admin",
]
