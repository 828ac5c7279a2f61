"""Per-request access logging and request-id propagation.

A plain ASGI middleware rather than BaseHTTPMiddleware: it wraps ``send``
without buffering, so streamed proxy responses pass straight through.

For every HTTP request it:
  - generates a ULID and binds it to the structlog context (so every log line
    the request produces carries it, and the proxy forwards it as X-Request-ID)
  - adds ``X-Request-ID`` to the response unless the handler already set one
  - logs one access line with method, path, status and duration
"""

from __future__ import annotations

import time

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from relay.proxy.headers import REQUEST_ID_HEADER
from relay.utils.logger import clear_request_id, get_logger, set_request_id
from relay.utils.ulid import generate_request_id

logger = get_logger(__name__)


class AccessLogMiddleware:
    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = generate_request_id()
        set_request_id(request_id)
        started = time.perf_counter()
        status_code = 500

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                headers = MutableHeaders(scope=message)
                if REQUEST_ID_HEADER not in headers:
                    headers.append(REQUEST_ID_HEADER, request_id)
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            logger.info(
                "request",
                method=scope["method"],
                path=scope["path"],
                status_code=status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            clear_request_id()
