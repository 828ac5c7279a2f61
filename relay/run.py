"""Programmatic uvicorn entry point for Relay.

Reads host and port from the loaded config (0.0.0.0:8080 by default, PORT
overrides the port) and starts uvicorn.

Usage:
    python -m relay.run
    relay                    # via pyproject.toml [project.scripts]

The credential store is initialized here, before uvicorn starts, so that
strict mode without ADMIN_TOKEN exits with status 1 and a stderr diagnostic
instead of a failed lifespan.
"""

from __future__ import annotations

import uvicorn

from relay.config import load_config
from relay.main import LOG_LEVEL, create_app
from relay.state import build_state

# OS-level TCP connection backlog queue size.
UVICORN_BACKLOG: int = 2048

# HTTP keep-alive timeout in seconds.
UVICORN_TIMEOUT_KEEP_ALIVE: int = 5


def main() -> None:
    """Start the Relay server.

    Raises:
        SystemExit(1): invalid config, or strict mode with no admin credential.
    """
    config = load_config()
    state = build_state(config)

    uvicorn.run(
        create_app(config=config, state=state),
        host=config.server.host,
        port=config.server.port,
        log_level=LOG_LEVEL.lower(),
        backlog=UVICORN_BACKLOG,
        timeout_keep_alive=UVICORN_TIMEOUT_KEEP_ALIVE,
        access_log=False,  # AccessLogMiddleware emits structured access lines
    )


if __name__ == "__main__":
    main()
