"""Structured JSON logging for the kiosk process.

Every record carries the service, environment, version and kiosk device id.
Redemption context (session, coupon, code, view changes) is grouped under a
``journey`` object so a single redemption can be followed across the engine,
the ledger and the usage log. Bind it with :func:`journey_context`.
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator, TextIO

from loguru import logger
from opentelemetry import trace

JOURNEY_FIELDS = frozenset(
    {"session_id", "coupon_id", "code", "event", "from_view", "to_view", "view", "status"}
)

_STDLIB_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def mask_identifier(identifier: str | None) -> str:
    """Keep only the last four digits of a member identifier."""

    if not identifier:
        return ""
    return f"******{identifier[-4:]}" if len(identifier) > 4 else "****"


@contextmanager
def journey_context(**fields: Any) -> Iterator[None]:
    """Attach redemption context to every log emitted inside the block, including spawned tasks."""

    bound = {key: str(value) for key, value in fields.items() if value is not None}
    with logger.contextualize(**bound):
        yield


class JsonLogSink:
    """Loguru sink writing one JSON document per line."""

    def __init__(
        self,
        *,
        service_name: str,
        environment: str,
        version: str,
        device_id: str,
        stream: TextIO | None = None,
    ) -> None:
        self._base = {
            "service": service_name,
            "environment": environment,
            "version": version,
            "device": device_id,
        }
        self._stream = stream

    def __call__(self, message: "logger.Message") -> None:
        stream = self._stream or sys.stdout
        stream.write(json.dumps(self.render(message.record), default=str, ensure_ascii=False) + "\n")

    def render(self, record: dict[str, Any]) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "timestamp": record["time"].isoformat(),
            "level": record["level"].name.lower(),
            "message": record["message"],
            "logger": record["name"],
            **self._base,
        }

        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            payload["trace_id"] = f"{span_context.trace_id:032x}"
            payload["span_id"] = f"{span_context.span_id:016x}"

        journey: dict[str, Any] = {}
        for key, value in record["extra"].items():
            if key in JOURNEY_FIELDS:
                journey[key] = value
            else:
                payload[key] = value
        if journey:
            payload["journey"] = journey

        if record["exception"] is not None:
            exc_type, exc_value, _ = record["exception"]
            payload["exception"] = f"{exc_type.__name__ if exc_type else 'Exception'}: {exc_value}"
        return payload


class InterceptHandler(logging.Handler):
    """Forward uvicorn, httpx and sqlalchemy records into loguru."""

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover - bridging glue
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        extra = {key: value for key, value in vars(record).items() if key not in _STDLIB_RECORD_ATTRS}
        logger.bind(**extra).opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def configure_logging(*, service_name: str, environment: str, version: str, device_id: str) -> None:
    logger.remove()
    logger.add(
        JsonLogSink(
            service_name=service_name,
            environment=environment,
            version=version,
            device_id=device_id,
        ),
        backtrace=False,
        diagnose=False,
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for noisy in ("uvicorn.access", "httpx", "aiosqlite"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


__all__ = ["JOURNEY_FIELDS", "JsonLogSink", "configure_logging", "journey_context", "mask_identifier"]
