"""Logging setup for the command line and library modules.

Console output goes to stderr so ``--list`` output on stdout stays clean.
Records may carry two dicts of structured fields: ``context_fields`` set
by :class:`LogContext` for everything logged inside it, and
``extra_fields`` passed per call (``extra={"extra_fields": {...}}``).
Only the JSON formatter renders them.
"""

import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        if record.exc_info:
            entry["exception"] = self._exception_fields(record)

        # Per-call fields override context fields of the same name
        entry.update(getattr(record, "context_fields", {}))
        entry.update(getattr(record, "extra_fields", {}))

        return json.dumps(entry, default=str)

    def _exception_fields(self, record: logging.LogRecord) -> Dict[str, str]:
        exc_type, exc_value, _ = record.exc_info
        return {
            "type": exc_type.__name__,
            "message": str(exc_value),
            "traceback": self.formatException(record.exc_info),
        }


class DetailedFormatter(logging.Formatter):
    """Timestamps, thread and source line; useful with pooled extraction."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s %(levelname)-7s [%(threadName)s] %(name)s:%(lineno)d %(message)s",
            datefmt="%H:%M:%S",
        )


class SimpleFormatter(logging.Formatter):
    """Level and message only."""

    def __init__(self) -> None:
        super().__init__(fmt="%(levelname)-7s %(name)s: %(message)s")


FORMATTERS = {
    "simple": SimpleFormatter,
    "detailed": DetailedFormatter,
    "json": StructuredFormatter,
}


def setup_logging(
    level: str = "INFO",
    format: str = "simple",
    log_file: Optional[Path] = None,
    max_file_size_mb: int = 10,
    backup_count: int = 5,
) -> None:
    """Replace the root logger's handlers.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
        format: Console format, one of ``FORMATTERS``
        log_file: Also write JSON records to this rotating file
        max_file_size_mb: Size at which the log file rotates
        backup_count: Rotated files to keep
    """
    root = logging.getLogger()
    root.setLevel(level.upper())
    for handler in list(root.handlers):
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(FORMATTERS.get(format, SimpleFormatter)())
    root.addHandler(console)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        rotating = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_file_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding="utf-8",
        )
        rotating.setFormatter(StructuredFormatter())
        root.addHandler(rotating)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class LogContext:
    """Attach fields to every record created while the context is active.

    Contexts nest: inner fields are merged over the outer ones. The fields
    go to ``context_fields``; ``extra_fields`` is left for logger calls,
    since ``Logger.makeRecord`` refuses to overwrite an existing attribute.
    """

    def __init__(self, logger: logging.Logger, **fields: Any) -> None:
        self.logger = logger
        self.fields = fields
        self._previous_factory = None

    def __enter__(self) -> "LogContext":
        previous = logging.getLogRecordFactory()
        fields = self.fields

        def factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
            record = previous(*args, **kwargs)
            record.context_fields = {**getattr(record, "context_fields", {}), **fields}
            return record

        self._previous_factory = previous
        logging.setLogRecordFactory(factory)
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        logging.setLogRecordFactory(self._previous_factory)
