"""Observability module for OpenTelemetry-aligned tracing, metrics, and logging."""

from search_gateway.observability.context import get_trace_context, set_trace_context, trace_context
from search_gateway.observability.logging import JsonFormatter, configure_logging
from search_gateway.observability.metrics import (
    CACHE_EVENTS,
    ENGINE_FALLBACKS,
    REQUEST_COUNT,
    SEARCH_LATENCY,
    get_metrics,
    get_metrics_content_type,
    init_metrics,
)
from search_gateway.observability.tracing import (
    configure_trace_exporter,
    create_span,
    get_tracer,
    init_tracing,
)


__all__ = [
    "CACHE_EVENTS",
    "ENGINE_FALLBACKS",
    "REQUEST_COUNT",
    "SEARCH_LATENCY",
    "JsonFormatter",
    "configure_logging",
    "configure_trace_exporter",
    "create_span",
    "get_metrics",
    "get_metrics_content_type",
    "get_trace_context",
    "get_tracer",
    "init_metrics",
    "init_tracing",
    "set_trace_context",
    "trace_context",
]
