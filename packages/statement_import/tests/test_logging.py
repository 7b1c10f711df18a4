"""Tests for structured logging setup."""

import logging

import structlog

from packages.statement_import.config import settings
from packages.statement_import.logging import add_component, import_context, setup_logging


class TestStructuredLogging:
    """Test structlog outputs structured JSON."""

    def test_setup_logging_configures_structlog(self):
        """After setup, structlog.get_logger() should return a bound logger."""
        setup_logging(log_level="DEBUG", json_output=True)
        logger = structlog.get_logger()
        assert logger is not None

    def test_setup_logging_dev_mode(self):
        """Dev mode should configure console renderer without errors."""
        setup_logging(log_level="DEBUG", json_output=False)
        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)

    def test_defaults_from_settings(self, monkeypatch):
        """Without arguments the level and renderer come from settings."""
        monkeypatch.setattr(settings, "ENVIRONMENT", "production")
        setup_logging()

        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)
        assert add_component in processors

    def test_http_client_logs_quieted(self):
        setup_logging(log_level="DEBUG", json_output=True)
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_component_added(self):
        event = add_component(None, "info", {"event": "csv_parsed"})
        assert event["component"] == "statement_import"

    def test_import_context_binds_and_clears(self):
        """Context is visible inside the block and removed after it."""
        with import_context(account_id="acc-1"):
            assert structlog.contextvars.get_contextvars()["account_id"] == "acc-1"

        assert "account_id" not in structlog.contextvars.get_contextvars()
