"""Observability module for OpenTelemetry-aligned tracing, metrics, and logging."""

from site_search.observability.context import get_trace_context, set_trace_context, trace_context
from site_search.observability.logging import JsonFormatter, configure_logging
from site_search.observability.metrics import (
    CACHE_LOOKUPS,
    FUZZY_TIMEOUTS,
    INDEX_DOC_COUNT,
    INDEX_OPERATIONS,
    SEARCH_LATENCY,
    get_metrics,
    get_metrics_content_type,
    init_metrics,
    track_latency,
)
from site_search.observability.tracing import create_span, get_tracer, init_tracing


__all__ = [
    "CACHE_LOOKUPS",
    "FUZZY_TIMEOUTS",
    "INDEX_DOC_COUNT",
    "INDEX_OPERATIONS",
    "SEARCH_LATENCY",
    "JsonFormatter",
    "configure_logging",
    "create_span",
    "get_metrics",
    "get_metrics_content_type",
    "get_trace_context",
    "get_tracer",
    "init_metrics",
    "init_tracing",
    "set_trace_context",
    "trace_context",
    "track_latency",
]
