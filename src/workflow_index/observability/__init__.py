"""Observability module for OpenTelemetry-aligned tracing, metrics, and logging."""

from workflow_index.observability.context import get_trace_context, operation_context, set_trace_context, trace_context
from workflow_index.observability.logging import JsonFormatter, configure_logging
from workflow_index.observability.metrics import (
    INDEX_DOC_COUNT,
    OPERATION_COUNT,
    OPERATION_LATENCY,
    REINDEX_DOCUMENTS,
    SNAPSHOT_CACHE,
    get_metrics,
    get_metrics_content_type,
    init_metrics,
    track_latency,
)
from workflow_index.observability.tracing import create_span, get_tracer, init_tracing


__all__ = [
    "INDEX_DOC_COUNT",
    "OPERATION_COUNT",
    "OPERATION_LATENCY",
    "REINDEX_DOCUMENTS",
    "SNAPSHOT_CACHE",
    "JsonFormatter",
    "configure_logging",
    "create_span",
    "get_metrics",
    "get_metrics_content_type",
    "get_trace_context",
    "get_tracer",
    "init_metrics",
    "init_tracing",
    "operation_context",
    "set_trace_context",
    "trace_context",
    "track_latency",
]
