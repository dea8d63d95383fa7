"""Structured JSON logging for the ledger service.

Every line carries the service identity, the active trace/span ids and the
request context bound by :class:`RequestContextMiddleware` (``request_id``
and ``actor_id``), so a posting can be followed from the HTTP call to the
ledger log entry.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Awaitable, Callable, Dict, TextIO
from uuid import uuid4

from fastapi import Request, Response
from loguru import logger
from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware


REQUEST_ID_HEADER = "X-Request-ID"
ACTOR_ID_HEADER = "X-Actor-Id"

_STDLIB_RECORD_FIELDS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
    "taskName",
}

_NOISY_LOGGERS = ("uvicorn.access", "aiosqlite", "sqlalchemy.engine.Engine")


class InterceptHandler(logging.Handler):
    """Hand uvicorn, SQLAlchemy and alembic records to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover - bridging glue
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        context = {
            key: value
            for key, value in vars(record).items()
            if key not in _STDLIB_RECORD_FIELDS and not key.startswith("otel")
        }
        text = record.getMessage().replace("{", "{{").replace("}", "}}")
        target = logger.bind(stdlib_logger=record.name, **context)
        target.opt(depth=6, exception=record.exc_info).log(level, text)


class JsonLineSink:
    """Loguru sink writing one JSON document per record."""

    def __init__(self, *, service_name: str, environment: str, version: str, stream: TextIO | None = None) -> None:
        self._static = {"service": service_name, "environment": environment, "version": version}
        self._stream = stream

    def __call__(self, message: "logger.Message") -> None:
        record = message.record
        extra = dict(record["extra"])
        payload: Dict[str, Any] = {
            "timestamp": record["time"].isoformat(),
            "level": record["level"].name.lower(),
            "message": record["message"],
            "logger": extra.pop("stdlib_logger", record["name"]),
            **self._static,
        }

        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            payload["trace_id"] = format(span_context.trace_id, "032x")
            payload["span_id"] = format(span_context.span_id, "016x")

        payload.update(extra)
        if record["exception"] is not None:
            payload["exception"] = repr(record["exception"].value)

        stream = self._stream or sys.stdout
        stream.write(json.dumps(payload, default=str) + "\n")
        stream.flush()


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind the request id and calling actor to every log line of a request."""

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
        request.state.request_id = request_id
        actor_id = (request.headers.get(ACTOR_ID_HEADER) or "").strip() or None

        with logger.contextualize(request_id=request_id, actor_id=actor_id):
            response = await call_next(request)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def configure_logging(
    *,
    service_name: str,
    environment: str,
    version: str,
    level: str = "INFO",
    echo_sql: bool = False,
) -> None:
    logger.remove()
    logger.add(
        JsonLineSink(service_name=service_name, environment=environment, version=version),
        level=level,
        backtrace=False,
        diagnose=False,
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in _NOISY_LOGGERS:
        if echo_sql and name.startswith("sqlalchemy"):
            continue
        logging.getLogger(name).setLevel(logging.WARNING)


__all__ = [
    "InterceptHandler",
    "JsonLineSink",
    "REQUEST_ID_HEADER",
    "RequestContextMiddleware",
    "configure_logging",
]
