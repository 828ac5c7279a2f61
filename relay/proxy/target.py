"""Upstream target state and URL validation.

``validate_http_url()`` is the single gate every target value passes through;
``TargetState`` holds the one configured target for the life of the process
(in memory only; a restart clears it).
"""

from __future__ import annotations

import threading
from typing import Any, Optional
from urllib.parse import urlsplit

from relay.errors import InvalidTargetError

_ALLOWED_SCHEMES: frozenset[str] = frozenset({"http", "https"})


def validate_http_url(value: Any) -> bool:
    """True iff ``value`` is an absolute http(s) URL with a host.

    Rejects relative (``example.com``), scheme-relative (``//example.com``)
    and non-HTTP (``ftp://x``, ``javascript:...``) values. Never raises.
    """
    if not isinstance(value, str) or not value:
        return False
    try:
        parts = urlsplit(value)
        # .port raises ValueError on a non-numeric or out-of-range port
        parts.port
    except ValueError:
        return False
    return parts.scheme in _ALLOWED_SCHEMES and bool(parts.hostname)


class TargetState:
    """The single optional upstream URL.

    Writes are serialized by a lock; ``get()`` reads a single attribute and
    needs none.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._target: Optional[str] = None

    def get(self) -> Optional[str]:
        return self._target

    def set(self, url: Any) -> str:
        """Store ``url`` as the target and return it.

        Raises:
            InvalidTargetError: ``url`` fails validate_http_url(); state unchanged.
        """
        if not validate_http_url(url):
            raise InvalidTargetError()
        with self._lock:
            self._target = url
        return url
