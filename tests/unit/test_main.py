"""
Unit tests for process setup.
"""

import logging

import json_log_formatter
import pytest

from service.tally_server import main as main_module
from service.tally_server.config import ObservabilityConfig, ServerConfig


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_json_format(self):
        """JSON format installs the JSON formatter."""
        main_module.setup_logging(ServerConfig())

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, json_log_formatter.JSONFormatter)
        assert root.level == logging.INFO
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_text_format_and_level(self):
        """Text format and level come from the config."""
        config = ServerConfig(
            observability=ObservabilityConfig(log_level="debug", log_format="text")
        )
        main_module.setup_logging(config)

        root = logging.getLogger()
        assert not isinstance(root.handlers[0].formatter, json_log_formatter.JSONFormatter)
        assert root.level == logging.DEBUG


class TestMain:
    """Tests for the entry point."""

    def test_config_error_exits(self, monkeypatch):
        """Invalid configuration exits with status 1."""
        monkeypatch.setenv("SYNC_DEBOUNCE_SECONDS", "0")

        with pytest.raises(SystemExit) as exc_info:
            main_module.main()
        assert exc_info.value.code == 1

    def test_runs_uvicorn(self, monkeypatch):
        """A valid configuration builds the app and hands it to uvicorn."""
        calls = {}

        def fake_run(app, **kwargs):
            calls["app"] = app
            calls.update(kwargs)

        monkeypatch.setenv("PORT", "12345")
        monkeypatch.setenv("LOG_FORMAT", "text")
        monkeypatch.setattr(main_module.uvicorn, "run", fake_run)

        main_module.main()

        assert calls["port"] == 12345
        assert calls["log_config"] is None
        assert calls["app"].title == "Tally Server"
