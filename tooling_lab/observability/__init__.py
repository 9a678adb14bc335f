"""Observability helpers; all of them are noops until telemetry is initialized."""

from tooling_lab.observability.otel import (
    NoopSpan,
    add_span_attributes,
    bucket_results_count,
    create_span,
    init_telemetry,
    instrument_fastapi,
    is_enabled,
    record_embedding_batch,
    record_indexed_documents,
    record_search_metrics,
    record_tool_call,
)

__all__ = [
    "NoopSpan",
    "add_span_attributes",
    "bucket_results_count",
    "create_span",
    "init_telemetry",
    "instrument_fastapi",
    "is_enabled",
    "record_embedding_batch",
    "record_indexed_documents",
    "record_search_metrics",
    "record_tool_call",
]
