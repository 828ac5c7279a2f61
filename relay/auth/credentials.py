"""Admin credential store for Relay.

Holds the single admin credential together with its provenance:

  UNSET            — no credential; every admin-gated operation fails closed
  ENVIRONMENT      — ADMIN_TOKEN from the process environment or settings file
  FILE_FALLBACK    — the baked-in fallback token (file_fallback mode only)
  RUNTIME_OVERRIDE — replaced via change-admin-token or provisioned via setup

Three deployment modes share this one store (see relay.config.AdminMode):

  strict        — ADMIN_TOKEN absent → create_credential_store() exits(1)
  degraded      — ADMIN_TOKEN absent → store stays UNSET, process keeps running
  file_fallback — ADMIN_TOKEN absent → fallback token; provision() can persist
                  a credential to the settings file while the store is UNSET

Concurrency:
  The current credential is an immutable CredentialSnapshot. Readers take the
  reference without locking (attribute reads are atomic); writers build a new
  snapshot and swap it under a threading.Lock, so no reader can ever observe a
  value paired with the wrong provenance.

Non-negotiables:
  - matches() uses hmac.compare_digest, never ``==``
  - replace() never persists; a restart reverts to the startup credential
  - credential values are never logged
"""

from __future__ import annotations

import hmac
import os
import sys
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional

from relay.auth.settings import SettingsFile
from relay.config import AdminMode, Config
from relay.constants import ADMIN_TOKEN_ENV, MIN_ADMIN_TOKEN_LENGTH
from relay.errors import InvalidNewTokenError, SetupDisabledError
from relay.utils.logger import get_logger

logger = get_logger(__name__)


class Provenance(str, Enum):
    UNSET = "unset"
    ENVIRONMENT = "environment"
    FILE_FALLBACK = "file_fallback"
    RUNTIME_OVERRIDE = "runtime_override"


@dataclass(frozen=True)
class CredentialSnapshot:
    """Point-in-time view of the credential. ``value`` is excluded from repr."""

    value: Optional[str] = field(default=None, repr=False)
    provenance: Provenance = Provenance.UNSET

    @property
    def is_active(self) -> bool:
        return self.provenance is not Provenance.UNSET


def is_acceptable_token(proposed: Any) -> bool:
    """True iff ``proposed`` may become the admin credential."""
    return isinstance(proposed, str) and len(proposed) >= MIN_ADMIN_TOKEN_LENGTH


class CredentialStore:
    """Holds the admin credential; see module docstring for the state model."""

    def __init__(
        self,
        mode: AdminMode = AdminMode.STRICT,
        settings: Optional[SettingsFile] = None,
    ) -> None:
        self.mode = mode
        self._settings = settings
        self._lock = threading.Lock()
        self._snapshot = CredentialSnapshot()

    # ── Startup ───────────────────────────────────────────────────────────────

    def initialize(
        self,
        env_value: Optional[str],
        fallback_value: Optional[str] = None,
    ) -> CredentialSnapshot:
        """Set the startup credential.

        ``env_value`` wins when non-empty. ``fallback_value`` is used only when
        the mode permits a fallback (file_fallback); otherwise the store is UNSET.
        """
        if env_value:
            snapshot = CredentialSnapshot(env_value, Provenance.ENVIRONMENT)
        elif fallback_value and self.mode is AdminMode.FILE_FALLBACK:
            snapshot = CredentialSnapshot(fallback_value, Provenance.FILE_FALLBACK)
        else:
            snapshot = CredentialSnapshot()

        with self._lock:
            self._snapshot = snapshot

        logger.info(
            "Admin credential initialized",
            mode=self.mode.value,
            provenance=snapshot.provenance.value,
            active=snapshot.is_active,
        )
        return snapshot

    # ── Reads ─────────────────────────────────────────────────────────────────

    def current(self) -> CredentialSnapshot:
        return self._snapshot

    @property
    def is_active(self) -> bool:
        return self._snapshot.is_active

    def matches(self, candidate: Any) -> bool:
        """Timing-safe comparison against the current credential.

        Always False while the store is inactive or for non-string candidates.
        """
        snapshot = self._snapshot
        if not snapshot.is_active or snapshot.value is None:
            return False
        if not isinstance(candidate, str):
            return False
        return hmac.compare_digest(
            candidate.encode("utf-8"), snapshot.value.encode("utf-8")
        )

    @property
    def provisioning_enabled(self) -> bool:
        return self.mode is AdminMode.FILE_FALLBACK and self._settings is not None

    @property
    def setup_available(self) -> bool:
        return self.provisioning_enabled and not self.is_active

    def instructions(self) -> Optional[str]:
        """Human-readable setup guidance while inactive; None once active."""
        if self.is_active:
            return None
        if self.provisioning_enabled:
            return (
                "No admin token is active. POST /api/setup with "
                f'{{"newToken": "<at least {MIN_ADMIN_TOKEN_LENGTH} characters>"}} '
                f"to provision one; it is saved to {self._settings.path} for the next start."  # type: ignore[union-attr]
            )
        return (
            f"No admin token is active. Set {ADMIN_TOKEN_ENV} in the environment "
            "and restart the server."
        )

    # ── Writes ────────────────────────────────────────────────────────────────

    def replace(self, proposed: Any) -> Provenance:
        """Swap in a new credential for the life of this process.

        Not durable: nothing is written to disk, a restart reverts to the
        startup credential.

        Returns:
            The provenance of the credential that was replaced.

        Raises:
            InvalidNewTokenError: ``proposed`` is not a string of at least 16
                characters. The current credential is left untouched.
        """
        if not is_acceptable_token(proposed):
            raise InvalidNewTokenError()
        with self._lock:
            previous = self._snapshot.provenance
            self._snapshot = CredentialSnapshot(proposed, Provenance.RUNTIME_OVERRIDE)
        logger.info(
            "Admin credential replaced",
            previous_provenance=previous.value,
            provenance=Provenance.RUNTIME_OVERRIDE.value,
        )
        return previous

    def provision(self, new_token: Any) -> Provenance:
        """Persist and activate a credential while none is active (file_fallback only).

        Raises:
            SetupDisabledError:   provisioning is off, or a credential is active.
            InvalidNewTokenError: ``new_token`` is too short or not a string.
            SettingsWriteError:   the settings file could not be written; the
                                  store stays inactive.
        """
        if not self.provisioning_enabled:
            raise SetupDisabledError()
        if not is_acceptable_token(new_token):
            raise InvalidNewTokenError()

        with self._lock:
            # Re-checked under the lock so two concurrent setups cannot both win.
            if self._snapshot.is_active:
                raise SetupDisabledError()
            self._settings.write_token(new_token)  # type: ignore[union-attr]
            previous = self._snapshot.provenance
            self._snapshot = CredentialSnapshot(new_token, Provenance.RUNTIME_OVERRIDE)

        logger.info(
            "Admin credential provisioned",
            previous_provenance=previous.value,
            provenance=Provenance.RUNTIME_OVERRIDE.value,
        )
        return previous


# ─── Factory ──────────────────────────────────────────────────────────────────


def create_credential_store(
    config: Config,
    environ: Optional[Mapping[str, str]] = None,
) -> CredentialStore:
    """Build and initialize the credential store for ``config.admin.mode``.

    ADMIN_TOKEN is read from ``environ`` (default ``os.environ``) and, if absent
    there, from the settings file.

    Raises:
        SystemExit(1): strict mode and no credential available.
    """
    env = os.environ if environ is None else environ
    settings = SettingsFile(config.admin.settings_path)

    env_value = env.get(ADMIN_TOKEN_ENV) or settings.read_token()

    if not env_value and config.admin.mode is AdminMode.STRICT:
        print(
            f"ERROR: {ADMIN_TOKEN_ENV} is not set. "
            f"Set {ADMIN_TOKEN_ENV} in environment before starting.",
            file=sys.stderr,
        )
        raise SystemExit(1)

    store = CredentialStore(
        mode=config.admin.mode,
        settings=settings if config.admin.mode is AdminMode.FILE_FALLBACK else None,
    )
    snapshot = store.initialize(env_value, config.admin.fallback_token)

    if snapshot.provenance is Provenance.FILE_FALLBACK:
        logger.warning(
            "SECURITY WARNING: using the built-in fallback admin token. "
            "Anyone who knows the default can reconfigure this proxy. "
            "Set ADMIN_TOKEN or use admin.mode: strict for real deployments."
        )
    elif not snapshot.is_active:
        logger.warning(
            "Admin token not set; running in read-only mode",
            instructions=store.instructions(),
        )
    return store
