"""Structured JSON logging for the extraction worker.

Uses python-json-logger with GCP Cloud Logging severity mapping when running
as a Cloud Run service/job (or when LOG_FORMAT=json), plain text locally.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

from pythonjsonlogger.json import JsonFormatter

# GCP severity mapping: Python log levels -> Cloud Logging severity strings
_GCP_SEVERITY = {
    "DEBUG": "DEBUG",
    "INFO": "INFO",
    "WARNING": "WARNING",
    "ERROR": "ERROR",
    "CRITICAL": "CRITICAL",
}

# Chatty third-party loggers that drown out job logs at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "google.auth", "urllib3")

_job_context: ContextVar[dict[str, object] | None] = ContextVar("job_context", default=None)


@contextmanager
def job_context(**fields: object) -> Iterator[None]:
    """Attach ``fields`` to every record logged inside the block."""
    token = _job_context.set(fields)
    try:
        yield
    finally:
        _job_context.reset(token)


class JobContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in (_job_context.get() or {}).items():
            setattr(record, key, value)
        return True


class GCPJsonFormatter(JsonFormatter):
    """JSON formatter that maps Python log levels to GCP severity."""

    def add_fields(
        self,
        log_record: dict[str, object],
        record: logging.LogRecord,
        message_dict: dict[str, object],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["severity"] = _GCP_SEVERITY.get(record.levelname, record.levelname)
        log_record.pop("levelname", None)


def _use_json() -> bool:
    if os.getenv("LOG_FORMAT", "").strip().lower() == "json":
        return True
    return bool(os.getenv("K_SERVICE") or os.getenv("CLOUD_RUN_JOB"))


def setup_logging(*, level: str = "INFO") -> None:
    """Configure root logging once at process start."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Remove existing handlers
    for h in root.handlers[:]:
        root.removeHandler(h)

    handler = logging.StreamHandler()
    if _use_json():
        handler.setFormatter(GCPJsonFormatter(
            fmt="%(message)s %(name)s %(funcName)s %(lineno)d",
            rename_fields={"message": "message", "name": "logger"},
        ))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)-8s %(name)s:%(lineno)d  %(message)s",
            datefmt="%H:%M:%S",
        ))

    handler.addFilter(JobContextFilter())
    root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
