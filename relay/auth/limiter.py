"""Shared rate limiter for Relay admin endpoints.

Uses slowapi (Starlette-compatible rate limiting) to cap target and
credential mutations per client address. The limit is checked inside the
route, after the admin dependency, so it counts authorized calls; on
/api/setup, which has no admin dependency, it counts every attempt.

The Limiter instance is created here and shared between:
  - relay/auth/router.py  (route decorators)
  - relay/main.py         (app.state.limiter + exception handler registration)
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from relay.constants import ADMIN_RATE_LIMIT

limiter = Limiter(key_func=get_remote_address)

__all__ = ["limiter", "ADMIN_RATE_LIMIT"]
