"""Unit tests for relay.utils.logger: credential redaction and request-id binding."""

from __future__ import annotations

import io
import json

import pytest

from relay.utils.logger import (
    REDACTED,
    clear_request_id,
    configure_logging,
    current_request_id,
    get_logger,
    redact_credentials,
    set_request_id,
)


# ─── redact_credentials() ─────────────────────────────────────────────────────


class TestRedactCredentials:
    @pytest.mark.parametrize(
        "key",
        ["token", "admin_token", "new_token", "newToken", "Authorization", "x-admin-token", "fallback_token"],
    )
    def test_sensitive_field_redacted(self, key: str) -> None:
        event = redact_credentials(None, "info", {"event": "x", key: "s3cret-value"})
        assert event[key] == REDACTED
        assert event["event"] == "x"

    def test_nested_header_mapping_redacted(self) -> None:
        event = redact_credentials(
            None,
            "info",
            {"event": "x", "headers": {"x-admin-token": "s3cret", "accept": "*/*"}},
        )
        assert event["headers"] == {"x-admin-token": REDACTED, "accept": "*/*"}

    def test_ordinary_fields_untouched(self) -> None:
        fields = {"event": "x", "provenance": "environment", "status_code": 403, "path": "/api/config"}
        assert redact_credentials(None, "info", dict(fields)) == fields


# ─── configure_logging() output ───────────────────────────────────────────────


class TestRenderedOutput:
    @pytest.fixture
    def log_stream(self):
        stream = io.StringIO()
        configure_logging(log_level="DEBUG", json_output=True, stream=stream)
        yield stream
        configure_logging()

    def test_json_line_redacted_and_correlated(self, log_stream: io.StringIO) -> None:
        set_request_id("01J0000000000000000000TEST")
        try:
            get_logger("test").info("admin action", new_token="never-printed-token")
        finally:
            clear_request_id()

        line = json.loads(log_stream.getvalue().strip())
        assert line["event"] == "admin action"
        assert line["new_token"] == REDACTED
        assert line["request_id"] == "01J0000000000000000000TEST"
        assert line["level"] == "info"
        assert "timestamp" in line
        assert "never-printed-token" not in log_stream.getvalue()

    def test_unknown_level_falls_back_to_info(self) -> None:
        stream = io.StringIO()
        try:
            configure_logging(log_level="verbose", json_output=True, stream=stream)
            log = get_logger("test")
            log.debug("hidden")
            log.info("shown")
        finally:
            configure_logging()
        assert "hidden" not in stream.getvalue()
        assert "shown" in stream.getvalue()


# ─── Request id binding ───────────────────────────────────────────────────────


class TestRequestId:
    def test_set_and_clear(self) -> None:
        assert current_request_id() is None
        set_request_id("01J0000000000000000000ABCD")
        assert current_request_id() == "01J0000000000000000000ABCD"
        clear_request_id()
        assert current_request_id() is None

    def test_clear_without_binding(self) -> None:
        clear_request_id()
        assert current_request_id() is None
