"""Settings file persistence for the admin credential.

The settings file is a dotenv-format key/value file in the working directory
(``.env`` by default) holding a single ``ADMIN_TOKEN=...`` entry:

  - read once at startup, after the process environment (env wins)
  - written only by ``CredentialStore.provision()`` (POST /api/setup)

Non-negotiables:
  - os.chmod(path, 0o600) after every write; the file holds a secret
  - the file is listed in .gitignore and must never be committed
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Union

from dotenv import dotenv_values, set_key

from relay.constants import ADMIN_TOKEN_ENV
from relay.errors import SettingsWriteError
from relay.utils.logger import get_logger

logger = get_logger(__name__)


class SettingsFile:
    """Read/write access to the admin token entry of a dotenv settings file."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path).expanduser()

    def read_token(self) -> Optional[str]:
        """Return the persisted admin token, or None if absent or empty."""
        if not self.path.is_file():
            return None
        value = dotenv_values(self.path).get(ADMIN_TOKEN_ENV)
        return value or None

    def write_token(self, token: str) -> None:
        """Persist ``token`` as ADMIN_TOKEN, creating the file if needed.

        Raises:
            SettingsWriteError: The file could not be created or written.
        """
        try:
            self.path.touch(mode=0o600, exist_ok=True)
            set_key(str(self.path), ADMIN_TOKEN_ENV, token)
            os.chmod(self.path, 0o600)
        except OSError as exc:
            logger.error("Settings file write failed", path=str(self.path), error=str(exc))
            raise SettingsWriteError() from exc
        logger.info("Admin token persisted to settings file", path=str(self.path))
