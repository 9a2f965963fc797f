"""
OpenTelemetry wiring for taskgrove.

setup_tracing installs the process-wide provider; SQL queries and the forest
resolution stages open spans through trace_span.
"""
import os
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlite3 import SQLite3Instrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SpanExporter

from taskgrove import __version__

logger = logging.getLogger(__name__)

TRACER_NAME = "taskgrove"

_provider_installed = False


def _env_flag(name: str) -> bool:
    return os.getenv(name, "false").lower() == "true"


def _span_exporters() -> List[SpanExporter]:
    exporters: List[SpanExporter] = []
    if _env_flag("OTEL_EXPORTER_OTLP_ENABLED"):
        endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317")
        exporters.append(OTLPSpanExporter(endpoint=endpoint, insecure=True))
        logger.info(f"Exporting spans to OTLP collector at {endpoint}")
    if _env_flag("OTEL_CONSOLE_EXPORTER_ENABLED"):
        exporters.append(ConsoleSpanExporter())
        logger.info("Exporting spans to the console")
    return exporters


def setup_tracing() -> None:
    """Install the tracer provider. Later calls are no-ops."""
    global _provider_installed
    if _provider_installed:
        return

    provider = TracerProvider(resource=Resource.create({
        "service.name": os.getenv("OTEL_SERVICE_NAME", TRACER_NAME),
        "service.version": __version__,
    }))
    for exporter in _span_exporters():
        provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    _provider_installed = True
    logger.info("OpenTelemetry tracing initialized")


def instrument_fastapi(app) -> None:
    """Add server spans for every HTTP request."""
    try:
        FastAPIInstrumentor.instrument_app(app)
    except Exception:
        logger.error("Failed to instrument FastAPI", exc_info=True)


def instrument_database() -> None:
    try:
        SQLite3Instrumentor().instrument()
    except Exception:
        logger.error("Failed to instrument sqlite3", exc_info=True)


def _attribute_value(value: Any) -> Any:
    return value if isinstance(value, (str, int, float, bool)) else str(value)


@contextmanager
def trace_span(
    name: str,
    attributes: Optional[Dict[str, Any]] = None,
    kind: trace.SpanKind = trace.SpanKind.INTERNAL,
) -> Iterator[trace.Span]:
    """
    Run the block inside a new span.

    None-valued attributes are skipped. An exception escaping the block is
    recorded on the span, marks it as an error, and propagates.

    Example:
        with trace_span("forest.closure", {"forest.workers": 4}):
            builder.build(organization_id, roots)
    """
    tracer = trace.get_tracer(TRACER_NAME, __version__)
    with tracer.start_as_current_span(name, kind=kind) as span:
        for key, value in (attributes or {}).items():
            if value is not None:
                span.set_attribute(key, _attribute_value(value))
        yield span


def add_span_attribute(key: str, value: Any) -> None:
    """Annotate the current span; does nothing outside a span."""
    trace.get_current_span().set_attribute(key, _attribute_value(value))
