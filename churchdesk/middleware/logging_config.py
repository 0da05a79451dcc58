"""
Structured logging configuration.

Every service logs with ``extra={"church_id": ..., "requisition_id": ...}``
so a single church or requisition can be traced through the log stream.

- Production: one JSON object per line
- Development: ``HH:MM:SS LEVEL logger: message [church=.. req=..] (request id)``
- Level: LOG_LEVEL from config or env
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

# Context fields callers attach via ``extra=``
REQUEST_FIELDS = ("request_id", "method", "path", "status", "duration_ms", "remote_addr")
TENANT_FIELDS = ("church_id", "user_id", "requisition_id")

# Short labels used by the readable formatter
_TENANT_LABELS = {"church_id": "church", "user_id": "user", "requisition_id": "req"}


def _context(record: logging.LogRecord, fields) -> dict:
    return {key: getattr(record, key) for key in fields if getattr(record, key, None) is not None}


class JSONFormatter(logging.Formatter):
    """One JSON document per record, context fields at top level."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_context(record, REQUEST_FIELDS))
        entry.update(_context(record, TENANT_FIELDS))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Single-line development format."""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{ts} {record.levelname:<8} {record.name}: {record.getMessage()}"

        tenant = _context(record, TENANT_FIELDS)
        if tenant:
            line += " [" + " ".join(f"{_TENANT_LABELS[k]}={v}" for k, v in tenant.items()) + "]"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" {duration:.0f}ms"
        req_id = getattr(record, "request_id", None)
        if req_id:
            line += f" ({req_id})"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install one stderr handler on the root logger for ``app``."""
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = app.config.get("LOG_LEVEL") or os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG")
    level = getattr(logging, level_name.upper(), logging.INFO)

    # Cleared first so repeated create_app() calls don't stack handlers
    root = logging.getLogger()
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    handler.setLevel(level)
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("werkzeug", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)
    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s", level_name, "JSON" if is_prod else "readable")
