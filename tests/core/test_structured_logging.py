"""Tests for the structlog helpers."""

from __future__ import annotations

import json

import structlog
from structlog.testing import capture_logs

from tablespine.core.logging import LogContext, bind_context, clear_context, configure_logging, get_logger


class TestLogging:
    def test_events_carry_fields(self):
        logger = get_logger("tablespine.test")
        with capture_logs() as logs:
            logger.warning("async_backlog_exceeded", backlog=1200, threshold=1000)
        assert logs == [
            {
                "event": "async_backlog_exceeded",
                "log_level": "warning",
                "backlog": 1200,
                "threshold": 1000,
            }
        ]

    def test_log_context_binds_and_unbinds(self):
        clear_context()
        with LogContext(database="main", table="players"):
            assert structlog.contextvars.get_contextvars() == {"database": "main", "table": "players"}
        assert structlog.contextvars.get_contextvars() == {}

    def test_log_context_keeps_outer_bindings(self):
        clear_context()
        bind_context(service="api")
        try:
            with LogContext(table="players"):
                pass
            assert structlog.contextvars.get_contextvars() == {"service": "api"}
        finally:
            clear_context()


class TestConfigureLogging:
    def test_stderr_json_filters_by_level(self, capsys):
        configure_logging(level="WARNING", json_format=True, stream="stderr", add_timestamp=False)
        logger = get_logger("tablespine.test")
        logger.info("database_connected", database="main")
        logger.warning("connection_unhealthy", database="main")
        out, err = capsys.readouterr()
        assert out == ""
        event = json.loads(err.strip())
        assert event["event"] == "connection_unhealthy"
        assert event["level"] == "warning"
        assert event["database"] == "main"
        assert event["service.name"] == "tablespine"

    def test_console_renderer_on_stdout(self, capsys):
        configure_logging(level="DEBUG", json_format=False, service="copy-job")
        get_logger("tablespine.test").debug("sql", sql="SELECT 1")
        out, err = capsys.readouterr()
        assert "sql" in out
        assert "SELECT 1" in out
        assert err == ""
