"""Prometheus metrics for search golden signals."""

from __future__ import annotations

from contextlib import contextmanager
import time
from typing import TYPE_CHECKING

from prometheus_client import Counter, Gauge, Histogram, generate_latest


if TYPE_CHECKING:
    from collections.abc import Generator


SEARCH_LATENCY = Histogram(
    "docs_search_latency_seconds",
    "Search query latency",
    ["strategy"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 5.0),
)

SEARCH_REQUESTS = Counter(
    "docs_search_requests_total",
    "Total search queries",
    ["strategy", "status"],
)

INDEX_DOC_COUNT = Gauge(
    "docs_search_index_document_count",
    "Documents in the loaded artifact",
)

ARTIFACT_LOADS = Counter(
    "docs_search_artifact_loads_total",
    "Artifact load attempts",
    ["status", "mode"],
)

WORKER_FAILURES = Counter(
    "docs_search_worker_failures_total",
    "Worker requests that fell back to inline execution",
    ["reason"],
)


@contextmanager
def track_latency(histogram: Histogram, **labels: str) -> Generator[None, None, None]:
    """Context manager to track operation latency."""
    start = time.perf_counter()
    try:
        yield
    finally:
        metric = histogram.labels(**labels) if labels else histogram
        metric.observe(time.perf_counter() - start)


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()
