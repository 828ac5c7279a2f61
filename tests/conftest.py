"""Root test configuration for Relay.

Every test runs with:
  - ADMIN_TOKEN / PORT / RELAY_ADMIN_MODE / RELAY_CONFIG removed from the
    environment, so the developer's shell never leaks into a test
  - the working directory set to a fresh tmp_path, so no test reads or writes
    a real ``.env`` or ``.relay/config.yaml``
  - slowapi's in-memory storage reset, so rate limits do not bleed across tests
"""

from __future__ import annotations

import pytest

from relay.auth.credentials import CredentialStore
from relay.config import AdminMode, Config


ADMIN_TOKEN = "test-admin-token-0123456789"


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    for name in ("ADMIN_TOKEN", "PORT", "RELAY_ADMIN_MODE", "RELAY_CONFIG"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture(autouse=True)
def reset_rate_limiter() -> None:
    """Reset the in-memory rate limiter storage between tests."""
    from relay.auth.limiter import limiter

    limiter._storage.reset()


@pytest.fixture
def admin_token() -> str:
    return ADMIN_TOKEN


@pytest.fixture
def active_store() -> CredentialStore:
    """A strict-mode store holding ADMIN_TOKEN from the environment."""
    store = CredentialStore(mode=AdminMode.STRICT)
    store.initialize(ADMIN_TOKEN)
    return store


@pytest.fixture
def default_config() -> Config:
    return Config.defaults()
