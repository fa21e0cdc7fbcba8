"""
Tests for observability — logging setup.
"""

import logging

import pytest

from fieldpipe.core.observability.logging_config import (
    FILE_ENV,
    LEVEL_ENV,
    resolve_level,
    setup_logging,
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv(LEVEL_ENV, raising=False)
    monkeypatch.delenv(FILE_ENV, raising=False)


class TestResolveLevel:
    def test_default(self):
        assert resolve_level() == "WARNING"

    def test_env(self, monkeypatch):
        monkeypatch.setenv(LEVEL_ENV, "debug")
        assert resolve_level() == "DEBUG"

    def test_argument_wins(self, monkeypatch):
        monkeypatch.setenv(LEVEL_ENV, "debug")
        assert resolve_level("error") == "ERROR"


class TestSetupLogging:
    def test_returns_console_level(self):
        assert setup_logging("INFO") == logging.INFO
        assert logging.getLogger().level == logging.INFO

    def test_unknown_level_falls_back(self):
        assert setup_logging("chatty") == logging.WARNING

    def test_replaces_handlers(self):
        setup_logging("INFO")
        setup_logging("INFO")
        assert len(logging.getLogger().handlers) == 1

    def test_plain_format_above_info(self):
        setup_logging("WARNING")
        formatter = logging.getLogger().handlers[0].formatter
        assert formatter._fmt == "%(levelname)s: %(message)s"

    def test_log_file(self, tmp_path):
        log_file = tmp_path / "logs" / "run.log"
        setup_logging("WARNING", log_file=log_file, log_file_level="DEBUG")

        assert logging.getLogger().level == logging.DEBUG
        logging.getLogger("fieldpipe.test").debug("written to file only")
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "written to file only" in log_file.read_text()

    def test_log_file_from_env(self, tmp_path, monkeypatch):
        log_file = tmp_path / "env.log"
        monkeypatch.setenv(FILE_ENV, str(log_file))
        setup_logging("ERROR")
        assert log_file.exists()

    def test_noisy_loggers_quieted(self):
        setup_logging("INFO")
        assert logging.getLogger("matplotlib").level == logging.WARNING
