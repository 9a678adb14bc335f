"""
OpenTelemetry tracing and metrics for the tooling lab server.

``init_telemetry`` installs OTLP exporters and instruments the backend
clients (httpx for embeddings, SQLAlchemy/asyncpg for pgvector). Until it
runs, ``create_span`` hands out a ``NoopSpan`` and every ``record_*``
function returns immediately.
"""

import logging
import os
from typing import Any, ContextManager, Dict, Optional

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.asyncpg import AsyncPGInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import SpanKind

logger = logging.getLogger(__name__)

SERVICE_NAMESPACE = "mcp-tooling-lab"
METRIC_EXPORT_INTERVAL_MS = 30000

# Upper bounds for the hit-count label on vector_searches_total
HIT_BUCKETS = ((0, "0"), (5, "1-5"), (10, "6-10"), (20, "11-20"))

_tracer: Optional[trace.Tracer] = None
_instruments: Dict[str, Any] = {}


class NoopSpan:
    """Span stand-in handed out while telemetry is off."""

    def set_attribute(self, key: str, value: Any) -> None:
        pass

    def add_event(self, name: str, attributes: Optional[Dict[str, Any]] = None) -> None:
        pass

    def is_recording(self) -> bool:
        return False

    def __enter__(self) -> "NoopSpan":
        return self

    def __exit__(self, *args) -> None:
        pass


def is_enabled() -> bool:
    return _tracer is not None


def init_telemetry(
    service_name: str,
    service_version: str,
    otlp_endpoint: Optional[str] = None,
) -> None:
    """
    Configure tracer and meter providers and instrument backend clients.

    Args:
        service_name: Reported as ``service.name``
        service_version: Reported as ``service.version``
        otlp_endpoint: OTLP gRPC collector; when None nothing is exported,
            but spans and metrics are still created
    """
    global _tracer

    resource = Resource.create(
        attributes={
            "service.name": service_name,
            "service.version": service_version,
            "service.namespace": SERVICE_NAMESPACE,
            "deployment.environment": os.getenv("ENVIRONMENT", "development"),
        }
    )

    trace_provider = TracerProvider(resource=resource)
    metric_readers = []
    if otlp_endpoint:
        trace_provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint))
        )
        metric_readers.append(
            PeriodicExportingMetricReader(
                exporter=OTLPMetricExporter(endpoint=otlp_endpoint),
                export_interval_millis=METRIC_EXPORT_INTERVAL_MS,
            )
        )
    trace.set_tracer_provider(trace_provider)
    _tracer = trace_provider.get_tracer(__name__)

    meter_provider = MeterProvider(resource=resource, metric_readers=metric_readers)
    metrics.set_meter_provider(meter_provider)
    _create_instruments(meter_provider.get_meter(__name__))

    HTTPXClientInstrumentor().instrument()
    SQLAlchemyInstrumentor().instrument()
    AsyncPGInstrumentor().instrument()

    logger.info(f"OpenTelemetry initialized for {service_name} (exporter: {otlp_endpoint or 'none'})")


def _create_instruments(meter: metrics.Meter) -> None:
    """Create the tool, embedding and search instruments on ``meter``."""
    _instruments.update(
        tool_calls=meter.create_counter(
            name="tool_calls_total",
            description="MCP tool calls by tool and outcome",
            unit="1",
        ),
        tool_duration=meter.create_histogram(
            name="tool_call_duration_seconds",
            description="Wall time of MCP tool calls",
            unit="s",
        ),
        embedded_texts=meter.create_counter(
            name="embedded_texts_total",
            description="Texts sent to the embedding endpoint",
            unit="1",
        ),
        indexed_documents=meter.create_counter(
            name="indexed_documents_total",
            description="Documents written to the vector store",
            unit="1",
        ),
        searches=meter.create_counter(
            name="vector_searches_total",
            description="Vector searches by hit-count bucket",
            unit="1",
        ),
        search_duration=meter.create_histogram(
            name="vector_search_duration_seconds",
            description="Embed plus nearest-neighbour query time",
            unit="s",
        ),
    )


def instrument_fastapi(app) -> None:
    """Instrument the FastAPI wrapper used by the HTTP transport."""
    if not is_enabled():
        return
    from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

    FastAPIInstrumentor.instrument_app(app)


def create_span(
    name: str,
    attributes: Optional[Dict[str, Any]] = None,
    kind: SpanKind = SpanKind.INTERNAL,
) -> ContextManager:
    """Start ``name`` as the current span, or return a NoopSpan."""
    if _tracer is None:
        return NoopSpan()

    span_attrs = {"service.namespace": SERVICE_NAMESPACE}
    if attributes:
        span_attrs.update(attributes)
    return _tracer.start_as_current_span(name, kind=kind, attributes=span_attrs)


def record_tool_call(
    tool_name: str,
    duration: float,
    success: bool,
    error_type: Optional[str] = None,
) -> None:
    if not _instruments:
        return

    _instruments["tool_calls"].add(
        1,
        attributes={
            "tool_name": tool_name,
            "success": str(success),
            "error_type": error_type or "none",
        },
    )
    _instruments["tool_duration"].record(
        duration,
        attributes={"tool_name": tool_name, "success": str(success)},
    )


def record_embedding_batch(batch_size: int, model: str) -> None:
    if not _instruments:
        return
    _instruments["embedded_texts"].add(batch_size, attributes={"model": model})


def record_indexed_documents(count: int, collection: str) -> None:
    if not _instruments:
        return
    _instruments["indexed_documents"].add(count, attributes={"collection": collection})


def record_search_metrics(results_count: int, search_time: float, filtered: bool = False) -> None:
    """Record one vector search: hit-count bucket, filter use and duration."""
    if not _instruments:
        return

    _instruments["searches"].add(
        1,
        attributes={
            "results_count_bucket": bucket_results_count(results_count),
            "filtered": str(filtered),
        },
    )
    _instruments["search_duration"].record(search_time, attributes={"filtered": str(filtered)})


def bucket_results_count(count: int) -> str:
    """Label for a hit count; anything above the last bound is "20+"."""
    for upper, label in HIT_BUCKETS:
        if count <= upper:
            return label
    return "20+"


def add_span_attributes(attributes: Dict[str, Any]) -> None:
    """Set attributes on the current span when it is recording."""
    span = trace.get_current_span()
    if span and span.is_recording():
        for key, value in attributes.items():
            span.set_attribute(key, str(value))
