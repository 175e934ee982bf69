"""
OpenTelemetry setup for rmmwatch.

- Configures the OTLP exporter (gRPC) to the collector.
- Instruments FastAPI, logging and outgoing webhook calls.
"""

from __future__ import annotations

import logging
import os

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.instrumentation.requests import RequestsInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from rmmwatch.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging() -> None:
    logging.basicConfig(level=settings.LOG_LEVEL, format=LOG_FORMAT)


def setup_otel(app: FastAPI) -> None:
    """
    Configure tracing for the rmmwatch service.

    Disabled with RMMWATCH_OTEL_ENABLED=false (tests, offline runs); logging
    is configured either way.
    """
    if not settings.OTEL_ENABLED:
        setup_logging()
        return

    resource = Resource.create(
        {
            "service.name": os.getenv("OTEL_SERVICE_NAME", "rmmwatch"),
            "deployment.environment": os.getenv("RMMWATCH_ENV", "dev"),
            "service.version": "0.1.0",
            "rmmwatch.component": "evaluation-engine",
        }
    )

    provider = TracerProvider(resource=resource)
    trace.set_tracer_provider(provider)

    span_exporter = OTLPSpanExporter(endpoint=settings.OTEL_ENDPOINT, insecure=True)
    provider.add_span_processor(BatchSpanProcessor(span_exporter))

    FastAPIInstrumentor().instrument_app(app)
    LoggingInstrumentor().instrument(set_logging_format=True)
    RequestsInstrumentor().instrument()

    setup_logging()
