"""Async forwarding engine for Relay.

Relays every request under ``/p``, whatever its method, to the configured target:

  /p/foo/bar?x=1  with target https://example.com/api/
      →  https://example.com/api/foo/bar?x=1

Key design properties:
  - Shared httpx.AsyncClient at app.state.http_client, never instantiated per-request
  - Request body streamed to the upstream; response body streamed back as raw
    bytes (no buffering, no decompression), so body size is unbounded
  - Only the credential/target lookup at entry touches shared state; the relay
    itself holds no lock and never serializes with other requests
  - One attempt per request: no retries, no caching

Failure handling:
  - credential inactive                → 503 admin_token_not_set (no network I/O)
  - target unset                       → 404 no_target_configured (no network I/O)
  - transport error before a response  → 502 proxy_error with the error message
  - transport error mid-body           → the body iterator re-raises; headers are
                                         already sent, so the server aborts the
                                         connection instead of writing a status
  - upstream 4xx/5xx                   → passed through unchanged
  - client disconnect before headers   → upstream call cancelled (its connection
                                         is closed); 499 recorded in the access log
  - client disconnect mid-body         → body iterator cancelled; the upstream
                                         response is closed by the background task
"""

from __future__ import annotations

import asyncio
from typing import AsyncGenerator, AsyncIterator, Optional
from urllib.parse import urlsplit

import httpx
from fastapi import APIRouter, Request
from fastapi.responses import Response, StreamingResponse
from starlette.background import BackgroundTask
from starlette.requests import ClientDisconnect
from starlette.routing import request_response
from starlette.types import Receive, Scope, Send

from relay.config import UpstreamConfig
from relay.constants import (
    CLIENT_CLOSED_REQUEST,
    POOL_KEEPALIVE_EXPIRY,
    POOL_MAX_KEEPALIVE,
    PROXY_PREFIX,
)
from relay.errors import AdminTokenNotSetError, NoTargetConfiguredError, UpstreamError
from relay.proxy.headers import build_client_response_headers, build_upstream_headers
from relay.state import RelayState
from relay.utils.logger import current_request_id, get_logger
from relay.utils.ulid import generate_request_id

logger = get_logger(__name__)

router = APIRouter(tags=["proxy"])


# ─── httpx.AsyncClient factory ────────────────────────────────────────────────


def create_http_client(upstream: Optional[UpstreamConfig] = None) -> httpx.AsyncClient:
    """Create the shared httpx.AsyncClient with connection pooling configured.

    Created once at lifespan startup and stored in app.state.http_client.
    Timeouts are applied per request (RelayState.upstream_timeout), so the
    client-level timeout here only covers requests built without one.
    """
    upstream = upstream or UpstreamConfig()
    return httpx.AsyncClient(
        limits=httpx.Limits(
            max_connections=upstream.max_connections,
            max_keepalive_connections=min(POOL_MAX_KEEPALIVE, upstream.max_connections),
            keepalive_expiry=POOL_KEEPALIVE_EXPIRY,
        ),
        timeout=httpx.Timeout(upstream.timeout_s),
        follow_redirects=False,  # pass 3xx through to the caller; do not resolve
    )


# ─── Outbound URL composition ─────────────────────────────────────────────────


def inbound_remainder(raw_path: str, query: str = "") -> str:
    """Strip the forwarding prefix from ``raw_path`` and re-attach ``query``.

    ``/p/foo`` → ``/foo``; ``/p`` → ``/``; ``/p/`` → ``/``; ``/p?x=1`` → ``?x=1``.
    """
    remainder = raw_path[len(PROXY_PREFIX):] if raw_path.startswith(PROXY_PREFIX) else raw_path
    if query:
        remainder += "?" + query
    return remainder or "/"


def build_outbound_url(target: str, remainder: str) -> str:
    """Compose the upstream URL from the configured target and the inbound remainder.

    The target's scheme and host(:port) are kept. A non-root target path has
    one trailing slash removed and is prepended to the remainder; the target's
    own query string and fragment are not used.

        https://example.com       + /foo/bar  → https://example.com/foo/bar
        https://example.com/api/  + /foo      → https://example.com/api/foo
        https://example.com       + /         → https://example.com/
    """
    parts = urlsplit(target)
    host = parts.netloc.rpartition("@")[2]  # drop any userinfo

    combined = ""
    if parts.path and parts.path != "/":
        combined += parts.path[:-1] if parts.path.endswith("/") else parts.path
    combined += remainder
    return f"{parts.scheme}://{host}{combined}"


def _raw_request_path(request: Request) -> str:
    raw_path: Optional[bytes] = request.scope.get("raw_path")
    if raw_path:
        return raw_path.split(b"?", 1)[0].decode("latin-1")
    return request.url.path


def _request_body(request: Request, body_sent: asyncio.Event) -> Optional[AsyncIterator[bytes]]:
    """Stream the inbound body only when the client declared one.

    ``body_sent`` is set once the inbound body has been read to the end.
    """
    if "content-length" in request.headers or "transfer-encoding" in request.headers:
        return _stream_request_body(request, body_sent)
    body_sent.set()
    return None


async def _stream_request_body(request: Request, body_sent: asyncio.Event) -> AsyncIterator[bytes]:
    async for chunk in request.stream():
        yield chunk
    body_sent.set()


async def _wait_for_disconnect(request: Request, body_sent: asyncio.Event) -> None:
    # receive() belongs to the body stream until it is exhausted; only after
    # that is every remaining ASGI message a disconnect notification.
    await body_sent.wait()
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            return


async def send_upstream(
    request: Request,
    http_client: httpx.AsyncClient,
    upstream_request: httpx.Request,
    body_sent: asyncio.Event,
) -> Optional[httpx.Response]:
    """Send ``upstream_request`` while watching the client connection.

    Returns the streaming upstream response, or None when the client
    disconnected first. In that case the upstream call is cancelled, which
    closes its connection.

    Raises:
        httpx.TransportError / httpx.InvalidURL: the upstream call failed.
        starlette.requests.ClientDisconnect: the client left mid-body.
    """
    send_task = asyncio.create_task(http_client.send(upstream_request, stream=True))
    watch_task = asyncio.create_task(_wait_for_disconnect(request, body_sent))
    try:
        done, _ = await asyncio.wait(
            {send_task, watch_task}, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        send_task.cancel()
        raise
    finally:
        watch_task.cancel()

    if send_task in done:
        return send_task.result()

    send_task.cancel()
    await asyncio.wait({send_task})
    if not send_task.cancelled() and send_task.exception() is None:
        await send_task.result().aclose()
    watch_task.result()
    return None


# ─── Proxy handler ────────────────────────────────────────────────────────────


async def proxy_handler(request: Request) -> Response:
    """Forward one inbound request to the configured target and stream the reply."""
    state: RelayState = request.app.state.relay

    # ── Configuration lookup (the only shared-state access) ──────────────────
    # Credential check precedes the target check: an unconfigured server
    # answers 503 even when a target is somehow set.
    if not state.credentials.is_active:
        raise AdminTokenNotSetError()
    target = state.target.get()
    if target is None:
        raise NoTargetConfiguredError()

    outbound_url = build_outbound_url(
        target, inbound_remainder(_raw_request_path(request), request.url.query)
    )
    request_id = current_request_id() or generate_request_id()
    http_client: httpx.AsyncClient = request.app.state.http_client
    body_sent = asyncio.Event()

    try:
        upstream_request = http_client.build_request(
            method=request.method,
            url=outbound_url,
            headers=[
                (name.encode("latin-1"), value.encode("latin-1"))
                for name, value in build_upstream_headers(request.headers.items(), request_id)
            ],
            content=_request_body(request, body_sent),
            timeout=state.upstream_timeout,
        )
        upstream_response = await send_upstream(request, http_client, upstream_request, body_sent)
    except ClientDisconnect:
        upstream_response = None
    except (httpx.TransportError, httpx.InvalidURL) as exc:
        # ConnectError: refused / DNS failure; TimeoutException; RemoteProtocolError:
        # upstream sent invalid HTTP. Nothing has been written to the client yet.
        logger.warning(
            "upstream_unavailable",
            method=request.method,
            upstream=outbound_url,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        raise UpstreamError(str(exc) or type(exc).__name__) from exc

    if upstream_response is None:
        logger.info("client_disconnected", method=request.method, upstream=outbound_url)
        return Response(status_code=CLIENT_CLOSED_REQUEST)

    logger.info(
        "request_proxied",
        method=request.method,
        upstream=outbound_url,
        status_code=upstream_response.status_code,
    )

    response = StreamingResponse(
        _relay_body(upstream_response, outbound_url),
        status_code=upstream_response.status_code,
        background=BackgroundTask(upstream_response.aclose),
    )
    encoding = upstream_response.headers.encoding
    response.raw_headers.extend(
        (name.lower().encode("latin-1"), value.encode(encoding))
        for name, value in build_client_response_headers(upstream_response.headers)
    )
    return response


class ProxyEndpoint:
    """ASGI endpoint wrapping proxy_handler.

    Starlette restricts function endpoints to the methods they list (GET by
    default); a class endpoint is dispatched for every method, so WebDAV,
    TRACE and extension methods reach the upstream too.
    """

    def __init__(self) -> None:
        self._app = request_response(proxy_handler)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        await self._app(scope, receive, send)


router.add_route(PROXY_PREFIX, ProxyEndpoint(), include_in_schema=False)
router.add_route(PROXY_PREFIX + "/{path:path}", ProxyEndpoint(), include_in_schema=False)


async def _relay_body(
    upstream_response: httpx.Response,
    outbound_url: str,
) -> AsyncGenerator[bytes, None]:
    """Yield the upstream body verbatim; re-raise transport errors to abort the connection."""
    try:
        async for chunk in upstream_response.aiter_raw():
            yield chunk
    except httpx.TransportError as exc:
        logger.warning(
            "upstream_stream_aborted",
            upstream=outbound_url,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        raise
    finally:
        await upstream_response.aclose()
