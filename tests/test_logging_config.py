"""Tests for logging setup."""

import logging

import pytest

from reposcan.logging_config import get_logger, level_for, setup_logging


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)
    logging.getLogger("reposcan").setLevel(logging.NOTSET)


class TestLevels:
    def test_flags(self):
        assert level_for() == logging.WARNING
        assert level_for(verbose=True) == logging.DEBUG
        assert level_for(quiet=True) == logging.ERROR

    def test_quiet_wins(self):
        assert level_for(verbose=True, quiet=True) == logging.ERROR

    def test_setup_sets_namespace_level(self):
        logger = setup_logging(verbose=True)
        assert logger.name == "reposcan"
        assert logger.level == logging.DEBUG


class TestGetLogger:
    def test_module_names_namespaced(self):
        assert get_logger("reposcan.git.history").name == "reposcan.git.history"
        assert get_logger("plugins.extra").name == "reposcan.plugins.extra"
        assert get_logger().name == "reposcan"


class TestLogFile:
    def test_debug_reaches_file_when_console_quiet(self, tmp_path):
        log_file = tmp_path / "reposcan.log"
        setup_logging(quiet=True, log_file=str(log_file))

        get_logger("reposcan.cache.store").debug("Cache miss: history:/repo")
        for handler in logging.getLogger().handlers:
            handler.flush()

        content = log_file.read_text()
        assert "Cache miss: history:/repo" in content
        assert "DEBUG" in content
