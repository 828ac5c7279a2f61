"""Request identifier generation for Relay.

``generate_request_id()`` returns a 26-character ULID used as:
  - the ``X-Request-ID`` response header and forwarded request header
  - the ``request_id`` field on every structured log line for the request

Uses the ``python-ulid`` library; ULIDs sort by creation time, which keeps
access-log entries greppable in arrival order.
"""

from __future__ import annotations

from ulid import ULID


def generate_request_id() -> str:
    """Generate a new ULID as a 26-character uppercase string.

    Returns:
        str: Crockford Base32 ULID, e.g. ``"01KJ0JRVHYA7KX32VPN5ZSCTMV"``.
    """
    return str(ULID())
