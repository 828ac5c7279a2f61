"""HTTP header processing for the Relay forwarding engine.

  - build_upstream_headers(): strips the admin credential header and hop-by-hop
    headers, injects X-Request-ID, forwards all remaining request headers.

  - build_client_response_headers(): strips hop-by-hop headers from the
    upstream response and forwards the rest, preserving repeated headers
    (e.g. several Set-Cookie lines) in their original order.

RFC 7230 §6.1: hop-by-hop headers MUST NOT be forwarded by intermediaries.
``host`` is dropped so the outbound request carries the target's host.
``content-length`` is kept: the body is relayed byte for byte in both
directions, so the declared length stays accurate.
"""

from __future__ import annotations

from typing import Iterable

import httpx

from relay.constants import ADMIN_TOKEN_HEADER

HOP_BY_HOP_HEADERS: frozenset[str] = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
        "host",
    }
)

REQUEST_ID_HEADER: str = "X-Request-ID"


def build_upstream_headers(
    request_headers: Iterable[tuple[str, str]],
    request_id: str,
) -> list[tuple[str, str]]:
    """Build the header list to send to the upstream target.

    Rules applied (in order):
      1. Strip ``x-admin-token``; the relay's own credential is never
         disclosed to the upstream.
      2. Strip hop-by-hop headers, including ``host``.
      3. Forward everything else unchanged, including ``Authorization``
         (it may be the upstream's own credential).
      4. Set ``X-Request-ID`` to this request's id, replacing any inbound value.

    Args:
        request_headers: (name, value) pairs, typically ``request.headers.items()``.
        request_id:      ULID for this request.
    """
    headers: list[tuple[str, str]] = []
    for name, value in request_headers:
        lower_name = name.lower()
        if lower_name == ADMIN_TOKEN_HEADER:
            continue
        if lower_name in HOP_BY_HOP_HEADERS:
            continue
        if lower_name == REQUEST_ID_HEADER.lower():
            continue
        headers.append((name, value))

    headers.append((REQUEST_ID_HEADER, request_id))
    return headers


def build_client_response_headers(
    upstream_headers: httpx.Headers,
) -> list[tuple[str, str]]:
    """Build the header list returned to the caller from the upstream response."""
    return [
        (name, value)
        for name, value in upstream_headers.multi_items()
        if name.lower() not in HOP_BY_HOP_HEADERS
    ]
