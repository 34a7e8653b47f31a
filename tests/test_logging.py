"""Tests for the JSON-lines formatter and the book-scoped adapter."""

import json
import logging

from scriva.utils.logging_config import BookAdapter, JSONFormatter


class CaptureHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.setFormatter(JSONFormatter())
        self.lines = []

    def emit(self, record):
        self.lines.append(self.format(record))


def _logger(name):
    logger = logging.getLogger(name)
    logger.handlers = []
    logger.propagate = False
    logger.setLevel(logging.DEBUG)
    handler = CaptureHandler()
    logger.addHandler(handler)
    return logger, handler


class TestJSONFormatter:

    def test_single_line_with_context_fields(self):
        logger, handler = _logger("scriva.test.formatter")
        logger.info("chapter reindexed | chunks=%d", 3, extra={"chapter_id": "ch-2", "unrelated": "x"})

        assert len(handler.lines) == 1
        entry = json.loads(handler.lines[0])
        assert entry["message"] == "chapter reindexed | chunks=3"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "scriva.test.formatter"
        assert entry["chapter_id"] == "ch-2"
        assert "unrelated" not in entry
        assert "book_key" not in entry

    def test_exception_included(self):
        logger, handler = _logger("scriva.test.exc")
        try:
            raise ValueError("bad chunk")
        except ValueError:
            logger.exception("failed")

        entry = json.loads(handler.lines[0])
        assert "ValueError: bad chunk" in entry["exception"]


class TestBookAdapter:

    def test_stamps_book_key_and_keeps_caller_extra(self):
        logger, handler = _logger("scriva.test.adapter")
        log = BookAdapter(logger, "octocat/novel@main")
        log.info("query served", extra={"duration_ms": 12})

        entry = json.loads(handler.lines[0])
        assert entry["book_key"] == "octocat/novel@main"
        assert entry["duration_ms"] == 12
