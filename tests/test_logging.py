"""Tests for structured logging."""

import json
import logging

import pytest
import structlog

from drip.observability.logging import (
    _add_request_id,
    _redact_sensitive,
    clear_request_id,
    configure_logging,
    get_logger,
    request_id_var,
    set_request_id,
)


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Restore root handlers replaced by configure_logging."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
    structlog.reset_defaults()


class TestRequestIdContext:
    """Tests for request ID context variable."""

    def test_request_id_default_none(self):
        """Request ID is None by default."""
        clear_request_id()
        assert request_id_var.get() is None

    def test_set_request_id(self):
        """set_request_id sets the context variable."""
        set_request_id("req-123")
        assert request_id_var.get() == "req-123"
        clear_request_id()


class TestAddRequestIdProcessor:
    """Tests for _add_request_id processor."""

    def test_adds_request_id_when_set(self):
        """Adds request_id to event dict when set."""
        set_request_id("req-abc")
        try:
            result = _add_request_id(None, None, {"event": "test"})
            assert result["request_id"] == "req-abc"
        finally:
            clear_request_id()

    def test_no_request_id_when_not_set(self):
        """Does not add request_id when not set."""
        clear_request_id()
        result = _add_request_id(None, None, {"event": "test"})
        assert "request_id" not in result


class TestRedactSensitiveProcessor:
    """Tests for _redact_sensitive processor."""

    @pytest.mark.parametrize(
        "field", ["private_key", "mnemonic", "secret", "password", "api_key", "auth_token"]
    )
    def test_redacts(self, field):
        """Sensitive fields are redacted."""
        result = _redact_sensitive(None, None, {"event": "test", field: "value"})
        assert result[field] == "[REDACTED]"

    def test_redacts_case_insensitive(self):
        """Redacts fields case-insensitively."""
        result = _redact_sensitive(None, None, {"event": "test", "Mnemonic": "word word"})
        assert result["Mnemonic"] == "[REDACTED]"

    def test_preserves_dispense_fields(self):
        """Recipient, asset and correlation ID stay readable."""
        event_dict = {
            "event": "Dispense completed",
            "recipient": "addr1",
            "asset": "native",
            "correlation_id": "c" * 64,
        }
        result = _redact_sensitive(None, None, dict(event_dict))
        assert result == event_dict


class TestConfigureLogging:
    """Tests for configure_logging function."""

    def setup_method(self):
        """Reset structlog before each test."""
        structlog.reset_defaults()

    def test_configure_json_format(self):
        """Configures JSON format logging."""
        configure_logging(level="INFO", log_format="json")
        assert get_logger("test") is not None

    def test_configure_text_format(self):
        """Configures text format logging."""
        configure_logging(level="DEBUG", log_format="text")
        assert get_logger("test") is not None

    def test_configure_log_level(self):
        """Configures log level."""
        configure_logging(level="WARNING", log_format="json")
        assert logging.getLogger().level == logging.WARNING

    def test_single_root_handler(self):
        """Reconfiguring replaces the root handler."""
        configure_logging(level="INFO", log_format="json")
        configure_logging(level="INFO", log_format="json")
        assert len(logging.getLogger().handlers) == 1

    def test_configure_invalid_log_level_raises(self):
        """Invalid log level raises ValueError."""
        with pytest.raises(ValueError, match="Invalid log level"):
            configure_logging(level="INVALID", log_format="json")


def test_structlog_integration(capfd):
    """structlog events carry the request ID and fields."""
    structlog.reset_defaults()
    configure_logging(level="INFO", log_format="json")

    set_request_id("req-integration")
    get_logger("integration").info("test event", recipient="addr1", api_key="sk-xxx")
    clear_request_id()

    captured = capfd.readouterr()
    output = captured.out + captured.err
    assert "req-integration" in output
    assert "test event" in output
    assert "addr1" in output
    assert "sk-xxx" not in output


def test_stdlib_extra_integration(capfd):
    """stdlib records render their extra= fields as JSON keys."""
    structlog.reset_defaults()
    configure_logging(level="INFO", log_format="json")

    logging.getLogger("drip.test").warning(
        "Dispense failed", extra={"recipient": "addr1", "reason": "timeout"}
    )

    line = capfd.readouterr().out.strip().splitlines()[-1]
    event = json.loads(line)
    assert event["event"] == "Dispense failed"
    assert event["recipient"] == "addr1"
    assert event["reason"] == "timeout"
    assert event["level"] == "warning"
