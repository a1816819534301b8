"""OpenTelemetry tracing configuration for the currency exchange API."""

import os
import sys
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.aiohttp_client import AioHttpClientInstrumentor
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import StatusCode


def configure_tracing(
    service_name: str = "exchange-api",
    otlp_endpoint: str | None = None,
    *,
    enable_console_export: bool = False,
) -> None:
    """Configure OpenTelemetry tracing for the application.

    Args:
        service_name: Name of the service for tracing
        otlp_endpoint: OTLP gRPC collector endpoint URL
        enable_console_export: Whether to enable console span export for debugging
    """
    resource = Resource.create(
        {
            "service.name": service_name,
            "service.version": os.getenv("SERVICE_VERSION", "1.0.0"),
            "deployment.environment": os.getenv("ENVIRONMENT", "development"),
        }
    )

    tracer_provider = TracerProvider(resource=resource)
    trace.set_tracer_provider(tracer_provider)

    otlp_endpoint = otlp_endpoint or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if otlp_endpoint:
        otlp_exporter = OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True)
        tracer_provider.add_span_processor(BatchSpanProcessor(otlp_exporter))

    # Console export is noisy under pytest
    is_testing = "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST")
    if not is_testing and (
        enable_console_export or os.getenv("OTEL_CONSOLE_EXPORT", "").lower() == "true"
    ):
        tracer_provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))


def instrument_application() -> None:
    """Instrument FastAPI, SQLAlchemy and outbound aiohttp calls."""
    FastAPIInstrumentor().instrument()
    SQLAlchemyInstrumentor().instrument()
    AioHttpClientInstrumentor().instrument()


def get_tracer(name: str) -> trace.Tracer:
    """Get a tracer instance for the given name.

    Args:
        name: Name for the tracer, typically __name__

    Returns:
        OpenTelemetry tracer instance
    """
    return trace.get_tracer(name)


def add_span_event(name: str, attributes: dict[str, Any] | None = None) -> None:
    """Add an event to the current span.

    Args:
        name: Event name
        attributes: Optional event attributes
    """
    current_span = trace.get_current_span()
    if current_span:
        current_span.add_event(name, attributes or {})


def set_span_error(description: str) -> None:
    """Mark the current span as failed."""
    current_span = trace.get_current_span()
    if current_span:
        current_span.set_status(trace.Status(StatusCode.ERROR, description))
