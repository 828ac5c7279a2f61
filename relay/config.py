"""Config loading for Relay.

Reads `.relay/config.yaml` (or `~/.relay/config.yaml`).
Raises SystemExit on parse errors, a missing `version` field or invalid values.
If no config file is found, returns default values (safe to run without config).

Config search order:
  1. `config_path` argument (if provided, for testing or explicit override)
  2. RELAY_CONFIG environment variable (if set)
  3. `.relay/config.yaml` (working directory, for development)
  4. `~/.relay/config.yaml` (home directory)

Environment variable overrides (applied after the file):
  PORT             — overrides server.port
  RELAY_ADMIN_MODE — overrides admin.mode (strict | degraded | file_fallback)

The admin credential itself is NOT part of the config file; it is read from
ADMIN_TOKEN (or the settings file) by relay.auth.credentials.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import NoReturn, Optional

import yaml

from relay.constants import (
    DEFAULT_FALLBACK_TOKEN,
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_SETTINGS_PATH,
    DEFAULT_UPSTREAM_TIMEOUT_S,
    POOL_MAX_CONNECTIONS,
)
from relay.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Version constants ────────────────────────────────────────────────────────

SUPPORTED_CONFIG_VERSION = 1
SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

DEFAULT_CONFIG_PATHS = [
    ".relay/config.yaml",
    os.path.expanduser("~/.relay/config.yaml"),
]


class AdminMode(str, Enum):
    """Credential-provisioning policy applied when ADMIN_TOKEN is absent.

    STRICT:        refuse to start.
    DEGRADED:      start with no credential; admin endpoints and forwarding
                   answer 503 until restarted with ADMIN_TOKEN.
    FILE_FALLBACK: use the configured fallback token; POST /api/setup can
                   provision and persist a credential while none is active.
    """

    STRICT = "strict"
    DEGRADED = "degraded"
    FILE_FALLBACK = "file_fallback"


VALID_ADMIN_MODES: frozenset[str] = frozenset(m.value for m in AdminMode)


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass
class ServerConfig:
    """Listener binding."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT


@dataclass
class AdminConfig:
    """Admin credential policy.

    fallback_token: used only in file_fallback mode. An empty string disables
                    the fallback, leaving the store unset so /api/setup can run.
    settings_path:  dotenv-format file read at startup and written by setup.
    """

    mode: AdminMode = AdminMode.STRICT
    fallback_token: str = DEFAULT_FALLBACK_TOKEN
    settings_path: str = DEFAULT_SETTINGS_PATH


@dataclass
class UpstreamConfig:
    """Outbound client settings."""

    timeout_s: Optional[float] = DEFAULT_UPSTREAM_TIMEOUT_S  # None disables timeouts
    max_connections: int = POOL_MAX_CONNECTIONS


@dataclass
class Config:
    """Root configuration object populated from .relay/config.yaml.

    All fields have safe defaults; Relay can start without any config file.
    """

    version: int = SUPPORTED_CONFIG_VERSION
    server: ServerConfig = field(default_factory=ServerConfig)
    admin: AdminConfig = field(default_factory=AdminConfig)
    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    path: Optional[str] = None  # Path to the loaded config file

    @classmethod
    def defaults(cls) -> "Config":
        """Return a fully-default Config (no file required)."""
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "Config":
        """Construct Config from a parsed YAML dict.

        Merges user-supplied values onto defaults; unknown keys are silently ignored.

        Raises:
            SystemExit(1): On an invalid admin.mode or a non-integer server.port.
        """
        server_raw = raw.get("server") or {}
        server = ServerConfig(
            host=server_raw.get("host", DEFAULT_HOST),
            port=_parse_port(server_raw.get("port", DEFAULT_PORT), "server.port"),
        )

        admin_raw = raw.get("admin") or {}
        admin = AdminConfig(
            mode=_parse_admin_mode(admin_raw.get("mode", AdminMode.STRICT.value), "admin.mode"),
            fallback_token=str(admin_raw.get("fallback_token", DEFAULT_FALLBACK_TOKEN) or ""),
            settings_path=admin_raw.get("settings_path", DEFAULT_SETTINGS_PATH),
        )

        upstream_raw = raw.get("upstream") or {}
        upstream = UpstreamConfig(
            timeout_s=upstream_raw.get("timeout_s", DEFAULT_UPSTREAM_TIMEOUT_S),
            max_connections=upstream_raw.get("max_connections", POOL_MAX_CONNECTIONS),
        )

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            server=server,
            admin=admin,
            upstream=upstream,
            cors_origins=list(raw.get("cors_origins", ["*"])),
            path=path,
        )


# ─── Config loading ───────────────────────────────────────────────────────────


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate Relay configuration.

    If no file is found at any search path, returns default Config (not an error).
    If a file is found but invalid, writes the error to stderr and raises
    SystemExit(1). Env overrides (PORT, RELAY_ADMIN_MODE) are applied last,
    whether or not a file was found.

    Raises:
        SystemExit(1): On YAML parse error, missing or unsupported ``version``,
                       invalid ``admin.mode``, or invalid ``PORT``.
    """
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get("RELAY_CONFIG")
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    found_path: Optional[str] = None
    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            found_path = expanded
            break

    if found_path is None:
        logger.info("No config file found, using defaults", searched=search_paths)
        config = Config.defaults()
        _apply_env_overrides(config)
        return config

    logger.info("Loading config", path=found_path)

    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        _fail(
            f"CONFIG ERROR: Failed to parse {found_path}: {exc}\n"
            "Relay refuses to start with an invalid config. "
            "Check the YAML syntax and try again."
        )
    except OSError as exc:
        _fail(f"CONFIG ERROR: Could not read {found_path}: {exc}")

    if not isinstance(raw, dict):
        if raw is None:
            _fail(
                f"CONFIG ERROR: {found_path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your config file."
            )
        _fail(
            f"CONFIG ERROR: {found_path} is not a valid YAML mapping.\n"
            "The config file must be a YAML dictionary at the top level."
        )

    version = raw.get("version")
    if version is None:
        _fail(
            f"CONFIG ERROR: {found_path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file."
        )
    if version not in SUPPORTED_VERSIONS:
        _fail(
            f"CONFIG ERROR: Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )

    config = Config.from_dict(raw, path=found_path)
    _apply_env_overrides(config)

    logger.info(
        "Config loaded",
        path=found_path,
        version=config.version,
        admin_mode=config.admin.mode.value,
        port=config.server.port,
    )
    return config


def _apply_env_overrides(config: Config) -> None:
    """Apply environment variable overrides to a Config object in-place.

    Raises:
        SystemExit(1): If PORT is not an integer or RELAY_ADMIN_MODE is unknown.
    """
    env_port = os.environ.get("PORT")
    if env_port:
        config.server.port = _parse_port(env_port, "PORT environment variable")

    env_mode = os.environ.get("RELAY_ADMIN_MODE")
    if env_mode:
        config.admin.mode = _parse_admin_mode(env_mode, "RELAY_ADMIN_MODE environment variable")


def _parse_port(value: object, source: str) -> int:
    try:
        port = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        _fail(f"CONFIG ERROR: {source} is not a valid integer: '{value}'")
    if not 0 < port < 65536:
        _fail(f"CONFIG ERROR: {source} is out of range: {port}")
    return port


def _parse_admin_mode(value: object, source: str) -> AdminMode:
    if isinstance(value, AdminMode):
        return value
    normalized = str(value).strip().lower().replace("-", "_")
    if normalized not in VALID_ADMIN_MODES:
        _fail(
            f"CONFIG ERROR: Invalid {source}: '{value}'. "
            f"Supported values: {sorted(VALID_ADMIN_MODES)}."
        )
    return AdminMode(normalized)


def _fail(message: str) -> NoReturn:
    print(message, file=sys.stderr)
    raise SystemExit(1)
