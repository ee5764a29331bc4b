"""Tests for osqtool logging setup."""

import json
import logging

from rich.logging import RichHandler

from osqtool.utils import StructuredFormatter, setup_logging


def test_pretty_uses_rich_handler():
    logger = setup_logging(log_level="DEBUG")
    assert logger.level == logging.DEBUG
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0], RichHandler)


def test_setup_replaces_handlers():
    setup_logging(log_format="plain")
    logger = setup_logging(log_format="plain")
    assert len(logger.handlers) == 1


def test_log_file(tmp_path):
    log_file = tmp_path / "logs" / "osqtool.log"
    logger = setup_logging(log_level="INFO", log_format="plain", log_file=log_file)
    logging.getLogger("osqtool.verifier").info("checked %d queries", 3)
    for handler in logger.handlers:
        handler.flush()
    assert "checked 3 queries" in log_file.read_text()


def test_structured_formatter_includes_query():
    record = logging.LogRecord("osqtool.verifier", logging.ERROR, __file__, 1, "%r failed", ("q",), None)
    record.query = "q"

    data = json.loads(StructuredFormatter().format(record))
    assert data["level"] == "ERROR"
    assert data["logger"] == "osqtool.verifier"
    assert data["message"] == "'q' failed"
    assert data["query"] == "q"
    assert data["timestamp"].endswith("Z")
