"""Shared constants for Relay.

Fixed paths, limits and names used across modules are defined here.
No magic values in other modules; import from here.
"""

# ─── Routing ──────────────────────────────────────────────────────────────────

# Inbound paths under this prefix are forwarded to the configured target.
# The prefix is stripped before the outbound URL is composed.
PROXY_PREFIX: str = "/p"

# Advertised to the UI in the POST /api/config response.
PROXY_PATH: str = PROXY_PREFIX + "/"

# Logged and returned when the client goes away before upstream headers arrive.
CLIENT_CLOSED_REQUEST: int = 499

# ─── Admin credential ─────────────────────────────────────────────────────────

# Environment variable (and settings-file key) holding the admin credential.
ADMIN_TOKEN_ENV: str = "ADMIN_TOKEN"

# Minimum length accepted by change-admin-token and setup.
MIN_ADMIN_TOKEN_LENGTH: int = 16

# Header names accepted by the auth gate, in precedence order.
ADMIN_TOKEN_HEADER: str = "x-admin-token"
AUTHORIZATION_HEADER: str = "authorization"

# Exact, case-sensitive prefix stripped from the credential header.
BEARER_PREFIX: str = "Bearer "

# Baked-in credential used only in file_fallback mode when ADMIN_TOKEN is absent.
# Insecure by intent: file_fallback is for trusted single-user scratch
# environments. Deployments that need real security run in strict mode.
DEFAULT_FALLBACK_TOKEN: str = "relay-default-admin-token"

# Settings file written by POST /api/setup, read at startup (dotenv format).
DEFAULT_SETTINGS_PATH: str = ".env"

# ─── Server ───────────────────────────────────────────────────────────────────

DEFAULT_PORT: int = 8080
DEFAULT_HOST: str = "0.0.0.0"

# ─── Upstream client ──────────────────────────────────────────────────────────

POOL_MAX_CONNECTIONS: int = 100
POOL_MAX_KEEPALIVE: int = 100
POOL_KEEPALIVE_EXPIRY: float = 30.0  # seconds
DEFAULT_UPSTREAM_TIMEOUT_S: float = 30.0

# ─── Rate limiting ────────────────────────────────────────────────────────────

# Applied to the credential-mutating and target-mutating admin endpoints.
ADMIN_RATE_LIMIT: str = "30/minute"
