"""
Unit tests for log redaction and correlation ID processors.
"""
import pytest

from invoicing_api.middleware.logging import (
    REDACTED,
    add_correlation_id_processor,
    correlation_id,
    log_performance,
    redact_sensitive_data,
    redact_sensitive_processor,
)


class TestRedaction:
    """Tests for redact_sensitive_data."""

    def test_token_fields_redacted(self):
        event = {
            "event": "tokens_stored",
            "company_id": "123",
            "access_token": "eyJhbGci",
            "x_refresh_token_expires_in": 8726400,
            "code": "auth-code",
        }

        redacted = redact_sensitive_processor(None, "info", event)

        assert redacted["access_token"] == REDACTED
        assert redacted["x_refresh_token_expires_in"] == REDACTED
        assert redacted["code"] == REDACTED
        assert redacted["company_id"] == "123"
        assert event["access_token"] == "eyJhbGci"

    def test_nested_structures(self):
        data = {"headers": {"Authorization": "Basic abc"}, "items": [{"client_secret": "s"}, "plain"]}

        redacted = redact_sensitive_data(data)

        assert redacted["headers"]["Authorization"] == REDACTED
        assert redacted["items"] == [{"client_secret": REDACTED}, "plain"]

    def test_depth_limit(self):
        data = {"a": {"b": {"c": {"d": {"e": {"f": {"g": {"token": "x"}}}}}}}}

        redacted = redact_sensitive_data(data)

        assert redacted["a"]["b"]["c"]["d"]["e"]["f"] == {"g": {"token": "x"}}


class TestCorrelationId:
    def test_processor_adds_current_id(self):
        token = correlation_id.set("abc-123")
        try:
            event = add_correlation_id_processor(None, "info", {"event": "x"})
        finally:
            correlation_id.reset(token)

        assert event["correlation_id"] == "abc-123"


class TestLogPerformance:
    """Tests for the log_performance decorator."""

    @pytest.mark.asyncio
    async def test_wraps_coroutine(self):
        @log_performance("sample")
        async def operation(value):
            return value * 2

        assert await operation(21) == 42
        assert operation.__name__ == "operation"

    @pytest.mark.asyncio
    async def test_errors_propagate(self):
        @log_performance("sample")
        async def operation():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await operation()

    def test_rejects_sync_functions(self):
        with pytest.raises(TypeError):
            log_performance("sample")(lambda: None)
