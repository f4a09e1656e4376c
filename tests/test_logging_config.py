"""Tests for logging setup."""

import logging

import pytest

from magz.logging_config import setup_logging


@pytest.fixture
def clean_root_logger():
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    yield root
    for handler in list(root.handlers):
        if handler not in before:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


def test_setup_logging_is_idempotent(tmp_path, clean_root_logger):
    setup_logging("info", tmp_path)
    count = len(clean_root_logger.handlers)
    setup_logging("debug", tmp_path)

    assert len(clean_root_logger.handlers) == count
    assert (tmp_path / "magz.log").exists()


def test_setup_logging_writes_file(tmp_path, clean_root_logger):
    setup_logging("warning", tmp_path)
    logging.getLogger("magz.test").debug("hello file")
    for handler in clean_root_logger.handlers:
        handler.flush()

    assert "hello file" in (tmp_path / "magz.log").read_text(encoding="utf-8")
