"""
Structured logging configuration.

- Development: single-line readable format with stage / rule tags
- Production: JSON lines (log aggregator compatible)
- Every record emitted inside a request carries its X-Request-ID
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# ``extra=`` keys copied into JSON log lines when present
EXTRA_FIELDS = (
    "request_id",
    "method",
    "path",
    "status",
    "duration_ms",
    "product_id",
    "stage",
    "rule_code",
    "kind",
)

QUIET_LOGGERS = ("werkzeug", "sqlalchemy.engine", "httpx", "openai")


class RequestContextFilter(logging.Filter):
    """Stamp ``request_id`` onto records logged while serving a request."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None and has_request_context():
            record.request_id = getattr(g, "request_id", None)
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL logger [rid] (stage/rule): message [12ms]``"""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        rid = getattr(record, "request_id", None)
        tags = [t for t in (getattr(record, "stage", None), getattr(record, "rule_code", None)) if t]
        duration = getattr(record, "duration_ms", None)

        line = f"{ts} {record.levelname:<7} {record.name}"
        if rid:
            line += f" [{rid}]"
        if tags:
            line += f" ({'/'.join(tags)})"
        line += f": {record.getMessage()}"
        if duration is not None:
            line += f" [{duration:.0f}ms]"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """
    Install one stderr handler on the root logger.

    Level: LOG_LEVEL env, else app config, else DEBUG in dev / INFO in prod.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL") or app.config.get("LOG_LEVEL") or ("INFO" if is_prod else "DEBUG")
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    handler.addFilter(RequestContextFilter())
    handler.setLevel(level)

    root = logging.getLogger()
    # re-created apps (tests) must not stack handlers
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    app.logger.setLevel(level)
    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s", level_name, "json" if is_prod else "readable")
