import json
import logging

import pytest

from entropy.logger import new_logger, parse_level


@pytest.mark.parametrize(
    "name, want",
    [
        ("debug", logging.DEBUG),
        ("DEBUG", logging.DEBUG),
        ("info", logging.INFO),
        ("", logging.INFO),
        ("warn", logging.WARNING),
        ("error", logging.ERROR),
        ("fatal", logging.CRITICAL),
    ],
)
def test_parse_level(name, want):
    assert parse_level(name) == want


def test_unknown_level_falls_back_to_info():
    assert parse_level("verbose") == logging.INFO


def test_new_logger_sets_level():
    assert new_logger("debug").level == logging.DEBUG
    assert new_logger("error").level == logging.ERROR


def test_new_logger_does_not_stack_handlers():
    new_logger("info")
    logger = new_logger("info")
    assert len(logger.handlers) == 1


def test_new_logger_writes_json(capsys):
    logger = new_logger("info")
    logger.info("hello", extra={"worker_id": 3})
    logger.debug("hidden")
    lines = capsys.readouterr().err.strip().splitlines()
    assert len(lines) == 1
    entry = json.loads(lines[0])
    assert entry["msg"] == "hello"
    assert entry["level"] == "info"
    assert entry["worker_id"] == 3