"""
Tests for logging setup — level resolution, formats and file output.
"""

import logging

from provisioner.core.observability.logging_config import (
    FILE_ENV_VAR,
    FILE_LEVEL_ENV_VAR,
    LEVEL_ENV_VAR,
    resolve_level,
    setup_logging,
)


class TestResolveLevel:
    def test_flags(self, monkeypatch):
        monkeypatch.setenv(LEVEL_ENV_VAR, "ERROR")
        assert resolve_level(debug=True) == "DEBUG"
        assert resolve_level(verbose=True) == "INFO"
        assert resolve_level(quiet=True) == "ERROR"

    def test_debug_beats_quiet(self):
        assert resolve_level(debug=True, quiet=True) == "DEBUG"

    def test_env(self, monkeypatch):
        monkeypatch.setenv(LEVEL_ENV_VAR, "INFO")
        assert resolve_level() == "INFO"

    def test_default(self, monkeypatch):
        monkeypatch.delenv(LEVEL_ENV_VAR, raising=False)
        assert resolve_level() == "WARNING"


class TestSetupLogging:
    def test_console_level(self, monkeypatch):
        monkeypatch.delenv(FILE_ENV_VAR, raising=False)
        setup_logging("INFO")
        root = logging.getLogger()
        assert root.level == logging.INFO
        assert len(root.handlers) == 1
        assert root.handlers[0].level == logging.INFO

    def test_unknown_level_falls_back(self, monkeypatch):
        monkeypatch.delenv(FILE_ENV_VAR, raising=False)
        setup_logging("chatty")
        assert logging.getLogger().level == logging.WARNING

    def test_debug_format_has_location(self, monkeypatch):
        monkeypatch.delenv(FILE_ENV_VAR, raising=False)
        setup_logging("DEBUG")
        assert "%(lineno)d" in logging.getLogger().handlers[0].formatter._fmt

    def test_called_twice_replaces_handlers(self, monkeypatch):
        monkeypatch.delenv(FILE_ENV_VAR, raising=False)
        setup_logging("INFO")
        setup_logging("WARNING")
        assert len(logging.getLogger().handlers) == 1

    def test_file_from_env(self, monkeypatch, tmp_path):
        log_file = tmp_path / "provision.log"
        monkeypatch.setenv(FILE_ENV_VAR, str(log_file))
        monkeypatch.setenv(FILE_LEVEL_ENV_VAR, "DEBUG")
        setup_logging("WARNING")

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        logging.getLogger("provisioner.test").debug("probe detail")
        for h in root.handlers:
            h.flush()
        assert "probe detail" in log_file.read_text()

    def test_noisy_loggers_quieted(self, monkeypatch):
        monkeypatch.delenv(FILE_ENV_VAR, raising=False)
        setup_logging("INFO")
        assert logging.getLogger("urllib3").level == logging.WARNING
