"""
Tests for structured logging configuration.
"""
import json
import logging
import sys

from examhall.core.logging_config import JSONFormatter, request_id_context


def _record(msg="hello", level=logging.INFO, **extra):
    record = logging.LogRecord(
        name="examhall.test",
        level=level,
        pathname="/srv/examhall/module.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def setup_method(self):
        self.formatter = JSONFormatter()

    def test_basic_fields(self):
        entry = json.loads(self.formatter.format(_record()))

        assert entry["level"] == "INFO"
        assert entry["logger"] == "examhall.test"
        assert entry["message"] == "hello"
        assert "timestamp" in entry
        assert "source" not in entry
        assert "request_id" not in entry

    def test_structured_extras_copied(self):
        record = _record(
            event="attempt.finalized",
            attempt_id="a-1",
            student_id="s-1",
            properties={"score": 50},
            unrelated="ignored",
        )

        entry = json.loads(self.formatter.format(record))

        assert entry["event"] == "attempt.finalized"
        assert entry["attempt_id"] == "a-1"
        assert entry["student_id"] == "s-1"
        assert entry["properties"] == {"score": 50}
        assert "unrelated" not in entry

    def test_request_id_from_context(self):
        token = request_id_context.set("req-123")
        try:
            entry = json.loads(self.formatter.format(_record()))
        finally:
            request_id_context.reset(token)

        assert entry["request_id"] == "req-123"

    def test_error_records_carry_source_and_exception(self):
        try:
            raise ValueError("bad")
        except ValueError:
            record = _record(level=logging.ERROR)
            record.exc_info = sys.exc_info()

        entry = json.loads(self.formatter.format(record))

        assert entry["source"] == "/srv/examhall/module.py:42"
        assert "ValueError: bad" in entry["exception"]

    def test_non_serializable_values_stringified(self):
        record = _record(properties={"when": object()})

        entry = json.loads(self.formatter.format(record))

        assert isinstance(entry["properties"]["when"], str)
