"""Relay FastAPI application factory + lifespan lifecycle.

This module implements:
  - create_app() — testable application factory
  - lifespan     — startup/shutdown sequence (built per app in create_app)
  - app          — module-level instance for ``uvicorn relay.main:app``,
                   built on first access

Startup sequence:
  1. build_state()          → app.state.relay   (credential store + empty target)
                              SystemExit(1) in strict mode without ADMIN_TOKEN
  2. create_http_client()   → app.state.http_client
  3. app.state.ready = True → startup banner

Shutdown (reverse):
  app.state.ready = False → close the shared HTTP client

Route registration order matters: the UI router carries the catch-all
``/{path:path}`` and is included last so it only sees unmatched paths.
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from relay.auth.limiter import limiter
from relay.auth.router import router as admin_router
from relay.config import Config, load_config
from relay.constants import PROXY_PATH
from relay.errors import (
    InvalidRequestError,
    RelayError,
    RouteNotFoundError,
    build_error_response,
)
from relay.health import router as health_router
from relay.proxy.engine import create_http_client, router as engine_router
from relay.proxy.headers import REQUEST_ID_HEADER
from relay.state import RelayState, build_state
from relay.ui import router as ui_router
from relay.utils.access import AccessLogMiddleware
from relay.utils.logger import configure_logging, get_logger

# ─── Logging Setup ────────────────────────────────────────────────────────────
# Configure logging at module import time (before any other imports that may log).
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
JSON_LOGS = os.getenv("JSON_LOGS", "true").lower() == "true"

configure_logging(log_level=LOG_LEVEL, json_output=JSON_LOGS)
logger = get_logger(__name__)


# ─── Lifespan ─────────────────────────────────────────────────────────────────


def _build_lifespan(config: Config, injected_state: Optional[RelayState]):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Relay starting up...")

        # ── Step 1: Credential store + target ─────────────────────────────────
        # build_state() raises SystemExit(1) in strict mode with no credential,
        # before ready=True is ever set.
        state = injected_state if injected_state is not None else build_state(config)
        app.state.relay = state

        # ── Step 2: Shared HTTP client ────────────────────────────────────────
        # NEVER instantiated per-request.
        http_client: httpx.AsyncClient = create_http_client(config.upstream)
        app.state.http_client = http_client
        logger.info(
            "HTTP proxy client created",
            max_connections=config.upstream.max_connections,
            timeout_s=config.upstream.timeout_s,
        )

        # ── Step 3: Ready ─────────────────────────────────────────────────────
        app.state.ready = True
        logger.info(
            "Relay listening",
            port=config.server.port,
            admin_mode=config.admin.mode.value,
            admin_configured=state.credentials.is_active,
            proxy_path=PROXY_PATH,
            hint="Visit / to open the UI. Configure via POST /api/config with x-admin-token header.",
        )

        yield

        # ── Shutdown ──────────────────────────────────────────────────────────
        logger.info("Relay shutting down...")
        app.state.ready = False

        try:
            await http_client.aclose()
            logger.info("HTTP proxy client closed")
        except Exception as exc:
            logger.warning("HTTP proxy client close error (non-fatal)", error=str(exc))

        logger.info("Relay shutdown complete")

    return lifespan


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app(
    config: Optional[Config] = None,
    state: Optional[RelayState] = None,
) -> FastAPI:
    """Create and configure the Relay FastAPI application.

    Call this function directly in tests to get an isolated app instance:
        app = create_app(config=Config.defaults(), state=my_state)

    The module-level `app` is built from load_config() on first access.

    Args:
        config: Loaded configuration. Defaults to ``state.config`` when a state
                is given, else ``load_config()``.
        state:  Pre-built RelayState. When omitted the lifespan builds one
                from ``config`` and the process environment.

    Returns:
        Configured FastAPI application with lifespan, routers, and middleware.
    """
    if config is None:
        config = state.config if state is not None else load_config()

    application = FastAPI(
        title="Relay",
        description="Single-target HTTP forwarding proxy with a token-protected admin API",
        version="1.0.0",
        lifespan=_build_lifespan(config, state),
        docs_url="/docs" if DEBUG else None,
        redoc_url="/redoc" if DEBUG else None,
        openapi_url="/openapi.json" if DEBUG else None,
    )

    # Initialize ready flag before lifespan; /health returns 503 until startup completes.
    application.state.ready = False
    application.state.config = config

    # Rate limiter, attached to app state as required by slowapi.
    application.state.limiter = limiter
    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # In Starlette the LAST-added middleware is OUTERMOST, so the access log
    # wraps CORS and sees preflight responses too.
    wildcard = "*" in config.cors_origins
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if wildcard else config.cors_origins,
        allow_credentials=not wildcard,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )
    application.add_middleware(AccessLogMiddleware)

    # Register routers
    # health_router: /health
    application.include_router(health_router)
    # admin_router:  /api/info, /api/config, /api/status, /api/change-admin-token, /api/setup
    application.include_router(admin_router, prefix="/api")
    # engine_router: /p and /p/{path:path}
    application.include_router(engine_router)
    # ui_router:     / and the catch-all /{path:path}, MUST be last
    application.include_router(ui_router)

    # Global exception handlers
    @application.exception_handler(RelayError)
    async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
        log = logger.error if exc.status_code >= 500 else logger.info
        log(
            "Request failed",
            status_code=exc.status_code,
            code=exc.code,
            path=str(request.url.path),
        )
        return build_error_response(exc)

    @application.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        if exc.status_code in (404, 405):
            return build_error_response(RouteNotFoundError())
        logger.warning(
            "HTTP exception",
            status_code=exc.status_code,
            detail=exc.detail,
            path=str(request.url.path),
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": "http_error", "message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @application.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.info("Malformed request body", path=str(request.url.path))
        return build_error_response(InvalidRequestError())

    @application.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
        )
        return build_error_response(RelayError())

    return application


# ─── Module-Level App (for uvicorn) ───────────────────────────────────────────


def __getattr__(name: str) -> FastAPI:
    # Importing create_app (as relay.run does) must not load the config.
    if name == "app":
        application = create_app()
        globals()["app"] = application
        return application
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
