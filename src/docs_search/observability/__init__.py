"""Observability module for structured logging, tracing and metrics."""

from docs_search.observability.context import (
    bind_correlation_id,
    get_trace_context,
    set_trace_context,
    trace_context,
)
from docs_search.observability.logging import JsonFormatter, configure_logging
from docs_search.observability.metrics import (
    ARTIFACT_LOADS,
    INDEX_DOC_COUNT,
    SEARCH_LATENCY,
    SEARCH_REQUESTS,
    WORKER_FAILURES,
    get_metrics,
    track_latency,
)
from docs_search.observability.tracing import create_span, get_tracer, init_tracing


__all__ = [
    "ARTIFACT_LOADS",
    "INDEX_DOC_COUNT",
    "SEARCH_LATENCY",
    "SEARCH_REQUESTS",
    "WORKER_FAILURES",
    "JsonFormatter",
    "bind_correlation_id",
    "configure_logging",
    "create_span",
    "get_metrics",
    "get_trace_context",
    "get_tracer",
    "init_tracing",
    "set_trace_context",
    "trace_context",
    "track_latency",
]
