"""Loguru sinks emitting one JSON object per line.

Services log with keyword context (``logger.info("Redemption confirmed", order_id=...)``); those
keywords land as top-level keys next to the service metadata and the active trace ids.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Dict

from loguru import logger
from opentelemetry import trace

# Attributes every stdlib LogRecord carries; anything else was passed through ``extra=``.
_STDLIB_RECORD_FIELDS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

# Chatty third-party loggers kept at WARNING.
_QUIET_LOGGERS = ("uvicorn.access", "aiosqlite", "sqlalchemy.engine", "httpx")


class InterceptHandler(logging.Handler):
    """Forward uvicorn, SQLAlchemy and alembic records into Loguru."""

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover - bridging glue
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        try:
            text = record.getMessage()
        except (TypeError, ValueError):
            text = str(record.msg)

        context = {
            key: value for key, value in vars(record).items() if key not in _STDLIB_RECORD_FIELDS
        }
        context.setdefault("stdlib_logger", record.name)
        logger.bind(**context).opt(depth=6, exception=record.exc_info).log(
            level, text.replace("{", "{{").replace("}", "}}")
        )


def _trace_ids() -> Dict[str, str]:
    span_context = trace.get_current_span().get_span_context()
    if not span_context.is_valid:
        return {}
    return {
        "trace_id": f"{span_context.trace_id:032x}",
        "span_id": f"{span_context.span_id:016x}",
    }


def render_record(record: Dict[str, Any], service: Dict[str, str]) -> str:
    entry: Dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name.lower(),
        "message": record["message"],
        "logger": record["name"],
        **service,
        **_trace_ids(),
    }
    entry.update(record["extra"])
    if record["exception"] is not None:
        entry["exception"] = repr(record["exception"].value)
    return json.dumps(entry, default=str)


def configure_logging(*, service_name: str, environment: str, version: str) -> None:
    """Replace Loguru's default sink with the JSON sink and bridge stdlib logging into it."""

    service = {"service": service_name, "environment": environment, "version": version}

    def sink(message: "logger.Message") -> None:
        sys.stdout.write(render_record(message.record, service) + "\n")

    logger.remove()
    logger.add(sink, backtrace=False, diagnose=False)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


__all__ = ["InterceptHandler", "configure_logging", "render_record"]
