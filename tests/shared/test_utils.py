"""Tests for utility functions."""

import logging
from datetime import datetime, timedelta, timezone

from macrocal.shared.utils import setup_logger, to_naive_utc, utc_now


def test_setup_logger_basic():
    """Test basic logger setup."""
    logger = setup_logger("test_logger")
    assert isinstance(logger, logging.Logger)
    assert logger.name == "test_logger"
    assert logger.level == logging.INFO


def test_setup_logger_with_file(tmp_path):
    """Test logger setup with file handler."""
    log_file = tmp_path / "logs" / "test.log"
    logger = setup_logger("test_file_logger", log_file=log_file)

    logger.info("Test message")

    assert log_file.exists()
    assert "Test message" in log_file.read_text()


def test_setup_logger_string_level():
    """Test logger with level given by name."""
    logger = setup_logger("test_debug_logger", level="debug")
    assert logger.level == logging.DEBUG


def test_setup_logger_handlers_attached_once():
    first = setup_logger("test_repeat_logger")
    handlers = len(first.handlers)

    second = setup_logger("test_repeat_logger")

    assert second is first
    assert len(second.handlers) == handlers


def test_utc_now_is_naive():
    now = utc_now()
    assert now.tzinfo is None
    assert abs(now - datetime.now(timezone.utc).replace(tzinfo=None)) < timedelta(seconds=5)


def test_to_naive_utc_converts_offset():
    dt = datetime(2024, 1, 11, 8, 30, tzinfo=timezone(timedelta(hours=-5)))
    assert to_naive_utc(dt) == datetime(2024, 1, 11, 13, 30)


def test_to_naive_utc_leaves_naive_untouched():
    dt = datetime(2024, 1, 11, 13, 30)
    assert to_naive_utc(dt) is dt
