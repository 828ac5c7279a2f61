"""Unit tests for relay.auth.settings: dotenv-format settings file."""

from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest

from relay.auth.settings import SettingsFile
from relay.errors import SettingsWriteError

TOKEN = "persisted-admin-token-42"


class TestReadToken:
    def test_missing_file(self, tmp_path: Path) -> None:
        assert SettingsFile(tmp_path / ".env").read_token() is None

    def test_reads_admin_token(self, tmp_path: Path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text(f"OTHER=1\nADMIN_TOKEN={TOKEN}\n")
        assert SettingsFile(env_file).read_token() == TOKEN

    def test_quoted_value(self, tmp_path: Path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text(f"ADMIN_TOKEN='{TOKEN}'\n")
        assert SettingsFile(env_file).read_token() == TOKEN

    def test_empty_value_is_absent(self, tmp_path: Path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text("ADMIN_TOKEN=\n")
        assert SettingsFile(env_file).read_token() is None

    def test_other_keys_only(self, tmp_path: Path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text("PORT=9000\n")
        assert SettingsFile(env_file).read_token() is None


class TestWriteToken:
    def test_creates_file_with_0600(self, tmp_path: Path) -> None:
        settings = SettingsFile(tmp_path / ".env")
        settings.write_token(TOKEN)
        assert settings.read_token() == TOKEN
        assert stat.S_IMODE(os.stat(settings.path).st_mode) == 0o600

    def test_preserves_other_keys(self, tmp_path: Path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text("PORT=9000\n")
        SettingsFile(env_file).write_token(TOKEN)
        content = env_file.read_text()
        assert "PORT=9000" in content
        assert TOKEN in content

    def test_overwrites_existing_token(self, tmp_path: Path) -> None:
        settings = SettingsFile(tmp_path / ".env")
        settings.write_token(TOKEN)
        settings.write_token(TOKEN + "-v2")
        assert settings.read_token() == TOKEN + "-v2"

    def test_tightens_existing_permissions(self, tmp_path: Path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text("")
        os.chmod(env_file, 0o644)
        SettingsFile(env_file).write_token(TOKEN)
        assert stat.S_IMODE(os.stat(env_file).st_mode) == 0o600

    def test_unwritable_location_raises(self, tmp_path: Path) -> None:
        settings = SettingsFile(tmp_path / "no-such-dir" / ".env")
        with pytest.raises(SettingsWriteError) as exc_info:
            settings.write_token(TOKEN)
        assert exc_info.value.status_code == 500
        assert exc_info.value.code == "settings_write_failed"
