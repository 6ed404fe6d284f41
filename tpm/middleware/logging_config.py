"""
Logging setup for the workflow service.

configure_logging(app) installs one stderr handler on the root logger:

- DEBUG/testing apps get ReadableFormatter (coloured single line)
- production apps get JSONFormatter (one object per line)

RequestContextFilter stamps request_id / tenant_id / user_id from flask.g
onto every record emitted during a request, so service-layer log lines can
be joined with the timing line for the same request.

LOG_LEVEL overrides the level (default DEBUG in dev, INFO in prod).
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_app_context

# Record attributes copied into JSON output when present.
_EXTRA_KEYS = (
    "request_id",
    "tenant_id",
    "user_id",
    "project_id",
    "step_id",
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
)

_NOISY_LOGGERS = ("werkzeug", "sqlalchemy.engine", "urllib3")


class RequestContextFilter(logging.Filter):
    """Attach request-scoped ids from flask.g unless the call passed them in ``extra``."""

    _SOURCES = (
        ("request_id", "request_id"),
        ("tenant_id", "jwt_tenant_id"),
        ("user_id", "jwt_user_id"),
    )

    def filter(self, record: logging.LogRecord) -> bool:
        if not has_app_context():
            return True
        for attr, g_name in self._SOURCES:
            if getattr(record, attr, None) is None:
                value = g.get(g_name)
                if value is not None:
                    setattr(record, attr, value)
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }
        entry.update({
            key: getattr(record, key)
            for key in _EXTRA_KEYS
            if getattr(record, key, None) is not None
        })
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Coloured single-line output for local development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        rid = getattr(record, "request_id", None)
        prefix = f"[{rid}] " if rid else ""
        line = f"{color}{ts} {record.levelname:<8}{self.RESET} {prefix}{record.name}: {record.getMessage()}"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" [{duration:.0f}ms]"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install the root handler for ``app``'s environment; safe to call repeatedly."""
    testing = app.config.get("TESTING", False)
    production = not app.config.get("DEBUG", False) and not testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if production else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if production else ReadableFormatter())
    handler.addFilter(RequestContextFilter())
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "json" if production else "readable")
