"""Tests for the package logger helpers."""

import logging

import pytest

from repo_risk.logging import add_stream_handler, get_logger, logger, set_log_level


@pytest.fixture(autouse=True)
def restore_logger():
    level = logger.level
    handlers = list(logger.handlers)
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)


class TestLogging:
    def test_package_logger_has_null_handler(self):
        assert any(isinstance(h, logging.NullHandler) for h in logger.handlers)

    def test_get_logger_returns_children(self):
        assert get_logger() is logger
        assert get_logger("jobs").name == "repo_risk.jobs"

    def test_set_log_level(self):
        set_log_level(logging.DEBUG)
        assert logger.level == logging.DEBUG

    def test_stream_handler_added_once(self):
        add_stream_handler()
        add_stream_handler()
        streams = [h for h in logger.handlers if type(h) is logging.StreamHandler]
        assert len(streams) == 1
        assert streams[0].level == logging.INFO
