from __future__ import annotations

import json
import logging
import sys
from typing import Any, Dict

from loguru import logger
from opentelemetry import trace


# Standard LogRecord attributes; anything else on a record is caller-supplied ``extra``.
_STANDARD_RECORD_FIELDS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}

_QUIET_LOGGERS = ("uvicorn.access", "apscheduler", "sqlalchemy.engine")


class InterceptHandler(logging.Handler):
    """Send stdlib records (uvicorn, SQLAlchemy, APScheduler, Alembic) through Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        context = {key: value for key, value in vars(record).items() if key not in _STANDARD_RECORD_FIELDS}
        target = logger.bind(**context) if context else logger
        target.opt(depth=6, exception=record.exc_info).log(level, record.getMessage())


def _attach_trace_context(record: Dict[str, Any]) -> None:
    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        record["extra"]["trace_id"] = f"{span_context.trace_id:032x}"
        record["extra"]["span_id"] = f"{span_context.span_id:016x}"


class JsonLineSink:
    """Writes one JSON object per log record to stdout."""

    def __init__(self, *, service_name: str, environment: str, version: str) -> None:
        self._static = {"service": service_name, "environment": environment, "version": version}

    def __call__(self, message: Any) -> None:
        record = message.record
        payload: Dict[str, Any] = {
            "timestamp": record["time"].isoformat(),
            "level": record["level"].name.lower(),
            "message": record["message"],
            "logger": record["name"],
            **self._static,
            **record["extra"],
        }
        if record["exception"] is not None:
            exc_type, exc_value, _ = record["exception"]
            payload["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value) if exc_value else None,
            }
        sys.stdout.write(json.dumps(payload, default=str) + "\n")


def configure_logging(*, service_name: str, environment: str, version: str, level: str = "INFO") -> None:
    """Emit structured JSON logs from Loguru and the stdlib loggers it intercepts."""

    logger.remove()
    logger.configure(patcher=_attach_trace_context)
    logger.add(
        JsonLineSink(service_name=service_name, environment=environment, version=version),
        level=level.upper(),
        backtrace=False,
        diagnose=False,
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
