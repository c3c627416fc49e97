"""Tests for mailvault.logging."""

from __future__ import annotations

import logging

import structlog

from mailvault.logging import _renderer, setup_logging


class TestSetupLogging:
    def test_json_mode(self):
        setup_logging(json=True, level="INFO")
        root = logging.getLogger()
        assert root.level == logging.INFO
        assert len(root.handlers) == 1

    def test_console_mode(self):
        setup_logging(json=False, level="DEBUG")
        root = logging.getLogger()
        assert root.level == logging.DEBUG

    def test_level_case_insensitive(self):
        setup_logging(level="warning")
        assert logging.getLogger().level == logging.WARNING

    def test_replaces_existing_handlers(self):
        root = logging.getLogger()
        root.addHandler(logging.StreamHandler())
        root.addHandler(logging.StreamHandler())
        setup_logging()
        assert len(root.handlers) == 1

    def test_quiets_client_libraries(self):
        setup_logging(level="DEBUG")
        assert logging.getLogger("botocore").level == logging.WARNING
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_binds_service_name(self):
        setup_logging(service="mailvault-webhook")
        assert structlog.contextvars.get_contextvars() == {"service": "mailvault-webhook"}
        setup_logging()
        assert structlog.contextvars.get_contextvars() == {}

    def test_structlog_produces_output(self, capsys):
        setup_logging(json=True, level="DEBUG")
        structlog.get_logger("test_logger").info("test_event", key="value")
        assert "test_event" in capsys.readouterr().out

    def test_renderer_follows_format(self):
        assert isinstance(_renderer(True), structlog.processors.JSONRenderer)
        assert isinstance(_renderer(False), structlog.dev.ConsoleRenderer)
