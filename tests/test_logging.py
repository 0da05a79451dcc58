"""
Log formatters carry request and church context.
"""

import json
import logging

from churchdesk.middleware.logging_config import JSONFormatter, ReadableFormatter


def _record(**extra):
    record = logging.LogRecord("churchdesk.workflow", logging.INFO, __file__, 1, "Requisition %s approved", ("r-1",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_context():
    line = JSONFormatter().format(_record(church_id="c-1", requisition_id="r-1", request_id="abc", duration_ms=12.5))
    entry = json.loads(line)
    assert entry["message"] == "Requisition r-1 approved"
    assert entry["level"] == "INFO"
    assert entry["church_id"] == "c-1"
    assert entry["requisition_id"] == "r-1"
    assert entry["duration_ms"] == 12.5
    assert "user_id" not in entry


def test_readable_formatter_labels_context():
    line = ReadableFormatter().format(_record(church_id="c-1", requisition_id="r-1", request_id="abc"))
    assert "Requisition r-1 approved [church=c-1 req=r-1] (abc)" in line


def test_readable_formatter_without_context():
    line = ReadableFormatter().format(_record())
    assert line.endswith("churchdesk.workflow: Requisition r-1 approved")
