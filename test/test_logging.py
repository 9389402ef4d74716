"""
Tests for structured logging.
"""

import json
import logging

from contactsvc.shared.correlation import _correlation_id_var
from contactsvc.shared.logging import StructuredFormatter, get_logger


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="contactsvc.test",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg="Batch row failed",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    def test_extra_fields_and_correlation_id(self) -> None:
        token = _correlation_id_var.set("corr-1")
        try:
            payload = json.loads(StructuredFormatter().format(_record(row="Row 3")))
        finally:
            _correlation_id_var.reset(token)

        assert payload["level"] == "WARNING"
        assert payload["message"] == "Batch row failed"
        assert payload["correlation_id"] == "corr-1"
        assert payload["row"] == "Row 3"

    def test_colliding_extra_is_prefixed(self) -> None:
        payload = json.loads(StructuredFormatter().format(_record(level="custom")))

        assert payload["level"] == "WARNING"
        assert payload["extra_level"] == "custom"


class TestGetLogger:
    def test_single_handler(self) -> None:
        first = get_logger("contactsvc.test.single")
        second = get_logger("contactsvc.test.single")

        assert first is second
        assert len(second.handlers) == 1
        assert second.propagate is False
