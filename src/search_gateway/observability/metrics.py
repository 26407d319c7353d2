"""Prometheus metrics for golden signals, bridged to OpenTelemetry meters."""

from __future__ import annotations

from typing import Any

from opentelemetry import metrics as otel_metrics
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.resources import Resource
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest


_meter_holder: dict[str, Any] = {"meter": None, "provider": None}


def init_metrics(
    service_name: str = "search-gateway",
    resource_attributes: dict[str, str] | None = None,
) -> MeterProvider:
    """Initialize OpenTelemetry metrics."""
    provider = _meter_holder.get("provider")
    if isinstance(provider, MeterProvider):
        return provider

    attributes = {"service.name": service_name}
    if resource_attributes:
        attributes.update(resource_attributes)
    provider = MeterProvider(resource=Resource.create(attributes))
    otel_metrics.set_meter_provider(provider)
    _meter_holder["provider"] = provider
    _meter_holder["meter"] = otel_metrics.get_meter(__name__)
    return provider


def _get_meter():
    meter = _meter_holder.get("meter")
    if meter is None:
        init_metrics()
        meter = _meter_holder.get("meter")
    return meter


class _BoundMetric:
    def __init__(self, wrapper: MetricBridge, labels: dict[str, str]) -> None:
        self._wrapper = wrapper
        self._labels = labels

    def inc(self, amount: float = 1.0) -> None:
        self._wrapper.inc(self._labels, amount)

    def observe(self, value: float) -> None:
        self._wrapper.observe(self._labels, value)


class MetricBridge:
    """Bridge Prometheus metrics to OTel instruments."""

    def __init__(
        self,
        prom_metric: Counter | Histogram,
        *,
        otel_name: str,
        otel_description: str,
        otel_kind: str,
    ) -> None:
        self._prom_metric = prom_metric
        self._otel_name = otel_name
        self._otel_description = otel_description
        self._otel_kind = otel_kind
        self._otel_instrument = None

    def labels(self, **labels: str) -> _BoundMetric:
        return _BoundMetric(self, labels)

    def _ensure_otel_instrument(self):
        if self._otel_instrument is not None:
            return self._otel_instrument
        meter = _get_meter()
        if self._otel_kind == "counter":
            self._otel_instrument = meter.create_counter(self._otel_name, description=self._otel_description)
        elif self._otel_kind == "histogram":
            self._otel_instrument = meter.create_histogram(self._otel_name, description=self._otel_description)
        else:
            raise ValueError(f"Unknown metric kind: {self._otel_kind}")
        return self._otel_instrument

    def inc(self, labels: dict[str, str], amount: float) -> None:
        self._prom_metric.labels(**labels).inc(amount)
        self._ensure_otel_instrument().add(amount, labels)

    def observe(self, labels: dict[str, str], value: float) -> None:
        self._prom_metric.labels(**labels).observe(value)
        self._ensure_otel_instrument().record(value, labels)


_REQUEST_COUNT_PROM = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["route", "status"],
)

_SEARCH_LATENCY_PROM = Histogram(
    "search_latency_seconds",
    "Engine lookup latency on cache misses",
    ["mode"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

_CACHE_EVENTS_PROM = Counter(
    "result_cache_events_total",
    "Result cache lookups by outcome",
    ["outcome"],
)

_ENGINE_FALLBACKS_PROM = Counter(
    "engine_fallbacks_total",
    "Engine calls answered by a fallback instead of the bound tier",
    ["tier", "operation"],
)

REQUEST_COUNT = MetricBridge(
    _REQUEST_COUNT_PROM,
    otel_name="http_requests_total",
    otel_description="Total HTTP requests",
    otel_kind="counter",
)

SEARCH_LATENCY = MetricBridge(
    _SEARCH_LATENCY_PROM,
    otel_name="search_latency_seconds",
    otel_description="Engine lookup latency on cache misses",
    otel_kind="histogram",
)

CACHE_EVENTS = MetricBridge(
    _CACHE_EVENTS_PROM,
    otel_name="result_cache_events_total",
    otel_description="Result cache lookups by outcome",
    otel_kind="counter",
)

ENGINE_FALLBACKS = MetricBridge(
    _ENGINE_FALLBACKS_PROM,
    otel_name="engine_fallbacks_total",
    otel_description="Engine calls answered by a fallback instead of the bound tier",
    otel_kind="counter",
)


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()


def get_metrics_content_type() -> str:
    """Get content type for metrics endpoint."""
    return CONTENT_TYPE_LATEST
