"""Tests for structured logging configuration."""

import json
import logging

from apiguard.app.core.config import settings
from apiguard.app.core.logging import (
    ContextFilter,
    JSONFormatter,
    get_log_context,
    get_logger,
    get_logging_config,
    request_id_var,
)


def _record(msg: str = "Test message") -> logging.LogRecord:
    return logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )


class TestJSONFormatter:
    """Test JSON formatter for structured logging."""

    def test_basic_json_format(self):
        data = json.loads(JSONFormatter().format(_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "test"
        assert data["message"] == "Test message"
        assert "timestamp" in data
        assert data["source"]["file"] == "test.py"
        assert data["source"]["line"] == 1

    def test_json_format_with_context(self):
        record = _record("Rate limit exceeded")
        record.request_id = "req-1"
        record.rule = "auth_login"
        record.client_ip = "203.0.113.5"
        record.key = None

        data = json.loads(JSONFormatter().format(record))

        assert data["request_id"] == "req-1"
        assert data["rule"] == "auth_login"
        assert data["client_ip"] == "203.0.113.5"
        assert "key" not in data

    def test_json_format_with_extra(self):
        record = _record()
        record.rules_loaded = 11

        data = json.loads(JSONFormatter().format(record))

        assert data["extra"] == {"rules_loaded": 11}

    def test_json_format_with_exception(self):
        try:
            raise ValueError("boom")
        except ValueError:
            import sys
            record = logging.LogRecord(
                name="test", level=logging.ERROR, pathname="test.py", lineno=1,
                msg="failed", args=(), exc_info=sys.exc_info(),
            )

        data = json.loads(JSONFormatter().format(record))

        assert any("ValueError: boom" in line for line in data["exception"])


class TestContextFilter:
    """Test context filter defaults."""

    def test_fills_defaults(self):
        record = _record()
        assert ContextFilter().filter(record) is True
        assert record.rule is None
        assert record.client_ip is None
        assert record.request_id is None

    def test_takes_request_id_from_context(self):
        token = request_id_var.set("req-ctx")
        try:
            record = _record()
            ContextFilter().filter(record)
        finally:
            request_id_var.reset(token)
        assert record.request_id == "req-ctx"

    def test_explicit_request_id_wins(self):
        token = request_id_var.set("req-ctx")
        try:
            record = _record()
            record.request_id = "explicit"
            ContextFilter().filter(record)
        finally:
            request_id_var.reset(token)
        assert record.request_id == "explicit"


class TestLoggingConfig:
    """Test dictConfig generation."""

    def test_text_format(self, monkeypatch):
        monkeypatch.setattr(settings, "log_format", "text")
        config = get_logging_config()
        assert config["handlers"]["console"]["formatter"] == "standard"
        assert "apiguard" in config["loggers"]

    def test_json_format(self, monkeypatch):
        monkeypatch.setattr(settings, "log_format", "json")
        config = get_logging_config()
        assert config["handlers"]["console"]["formatter"] == "json"
        assert config["formatters"]["json"]["()"].endswith("JSONFormatter")

    def test_structured_format(self, monkeypatch):
        monkeypatch.setattr(settings, "log_format", "structured")
        config = get_logging_config()
        assert config["handlers"]["console"]["formatter"] == "structured"
        assert "request_id" in config["formatters"]["structured"]["format"]

    def test_level_from_settings(self, monkeypatch):
        monkeypatch.setattr(settings, "log_level", "debug")
        assert get_logging_config()["loggers"]["apiguard"]["level"] == "DEBUG"


def test_get_logger():
    assert get_logger("apiguard.test").name == "apiguard.test"
    assert get_logger().name == "apiguard"


def test_get_log_context_drops_none():
    assert get_log_context(rule="auth_login", key=None, window=60) == {
        "rule": "auth_login",
        "window": 60,
    }
