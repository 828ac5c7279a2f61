"""Process-wide mutable state for one Relay instance.

``RelayState`` is built once by the lifespan (or passed to ``create_app()`` by
tests) and reached through ``request.app.state.relay``. It is the only holder
of the credential store and the target; nothing in Relay keeps either in a
module-level global.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional

import httpx

from relay.auth.credentials import CredentialStore, create_credential_store
from relay.config import Config
from relay.proxy.target import TargetState


@dataclass
class RelayState:
    config: Config
    credentials: CredentialStore
    target: TargetState = field(default_factory=TargetState)

    @property
    def upstream_timeout(self) -> httpx.Timeout:
        """Per-request timeout applied to every forwarded request."""
        return httpx.Timeout(self.config.upstream.timeout_s)


def build_state(
    config: Config,
    environ: Optional[Mapping[str, str]] = None,
) -> RelayState:
    """Initialize credentials for ``config`` and return fresh state.

    Raises:
        SystemExit(1): strict mode with no admin credential.
    """
    return RelayState(
        config=config,
        credentials=create_credential_store(config, environ),
    )
