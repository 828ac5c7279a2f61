"""Structured logging for Relay (structlog).

configure_logging() is called once per process by relay.main, from the
DEBUG / LOG_LEVEL / JSON_LOGS environment variables. Two things are specific
to Relay:

  - The request id is bound through structlog's contextvars, so the access
    line, admin actions and proxy errors of one request share a request_id.
  - redact_credentials runs before rendering: any field that can carry the
    admin credential or an upstream Authorization value is replaced with
    "[redacted]", including inside header mappings passed as a field.
"""

import logging
import sys
from typing import Any, Mapping, Optional, TextIO

import structlog
from structlog.types import EventDict, Processor

REDACTED = "[redacted]"

# Compared case-insensitively, with "-" folded to "_".
SENSITIVE_FIELDS: frozenset[str] = frozenset(
    {
        "admin_token",
        "authorization",
        "fallback_token",
        "new_token",
        "newtoken",
        "proxy_authorization",
        "token",
        "x_admin_token",
    }
)


def _is_sensitive(key: Any) -> bool:
    return isinstance(key, str) and key.lower().replace("-", "_") in SENSITIVE_FIELDS


def _redact_mapping(values: Mapping[Any, Any]) -> dict:
    return {k: (REDACTED if _is_sensitive(k) else v) for k, v in values.items()}


def redact_credentials(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Replace credential-bearing fields (top level and one mapping deep)."""
    for key, value in list(event_dict.items()):
        if _is_sensitive(key):
            event_dict[key] = REDACTED
        elif isinstance(value, Mapping):
            event_dict[key] = _redact_mapping(value)
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = True,
    stream: Optional[TextIO] = None,
) -> None:
    """Configure structlog for the process.

    Args:
        log_level:   DEBUG, INFO, WARNING, ERROR or CRITICAL; unknown values mean INFO.
        json_output: One JSON object per line when True, colored console lines otherwise.
        stream:      Output stream, stdout by default.
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
        structlog.processors.add_log_level,
        redact_credentials,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stdout),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = "relay") -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


# ─── Request id binding ───────────────────────────────────────────────────────


def set_request_id(request_id: str) -> None:
    """Bind ``request_id`` to every log line emitted in the current context."""
    structlog.contextvars.bind_contextvars(request_id=request_id)


def current_request_id() -> Optional[str]:
    return structlog.contextvars.get_contextvars().get("request_id")


def clear_request_id() -> None:
    structlog.contextvars.unbind_contextvars("request_id")


configure_logging()
