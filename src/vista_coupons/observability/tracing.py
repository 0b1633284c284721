from __future__ import annotations

import os
from contextlib import contextmanager
from enum import Enum
from typing import Any, Iterator
from uuid import UUID

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SpanExporter
from opentelemetry.semconv.resource import ResourceAttributes

TRACER_NAME = "vista_coupons.journey"
ATTRIBUTE_PREFIX = "journey."

_provider: TracerProvider | None = None


def _build_exporter() -> SpanExporter:
    # The OTLP exporter reads endpoint and headers from the standard OTEL_* variables.
    if os.getenv("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT") or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT"):
        return OTLPSpanExporter()
    return ConsoleSpanExporter()


def configure_tracing(
    app: FastAPI,
    *,
    service_name: str,
    service_version: str,
    environment: str,
    device_id: str,
) -> None:
    """Install the kiosk's tracer provider once and instrument ``app``."""

    global _provider

    if _provider is None:
        _provider = TracerProvider(
            resource=Resource.create(
                {
                    ResourceAttributes.SERVICE_NAME: service_name,
                    ResourceAttributes.SERVICE_VERSION: service_version,
                    ResourceAttributes.SERVICE_INSTANCE_ID: device_id,
                    ResourceAttributes.DEPLOYMENT_ENVIRONMENT: environment,
                }
            )
        )
        _provider.add_span_processor(BatchSpanProcessor(_build_exporter()))
        trace.set_tracer_provider(_provider)
        LoggingInstrumentor().instrument(set_logging_format=False)

    FastAPIInstrumentor.instrument_app(app, tracer_provider=_provider)


def span_attributes(**values: Any) -> dict[str, str | int | float | bool]:
    """Namespace journey attributes and coerce ids and enums; ``None`` values are dropped."""

    attributes: dict[str, str | int | float | bool] = {}
    for key, value in values.items():
        if value is None:
            continue
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, UUID):
            value = str(value)
        elif not isinstance(value, (str, int, float, bool)):
            value = str(value)
        attributes[f"{ATTRIBUTE_PREFIX}{key}"] = value
    return attributes


@contextmanager
def journey_span(name: str, *, tracer: trace.Tracer | None = None, **values: Any) -> Iterator[trace.Span]:
    """Span around a remote boundary call or a redemption step."""

    tracer = tracer or trace.get_tracer(TRACER_NAME)
    with tracer.start_as_current_span(name, attributes=span_attributes(**values)) as span:
        yield span


__all__ = ["TRACER_NAME", "configure_tracing", "journey_span", "span_attributes"]
