"""Unit tests for observability module."""

import json
import logging

from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode
import pytest

from search_gateway.observability import (
    CACHE_EVENTS,
    JsonFormatter,
    configure_logging,
    configure_trace_exporter,
    create_span,
    get_metrics,
    get_metrics_content_type,
    get_trace_context,
    set_trace_context,
    tracing as tracing_module,
)


def _record(msg="test message", **extra):
    record = logging.LogRecord(
        name="search_gateway.services.result_cache",
        level=logging.INFO,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.mark.unit
class TestJsonFormatter:
    def test_format_includes_trace_context(self):
        set_trace_context("a" * 32, "b" * 16, route="/api/search")

        data = json.loads(JsonFormatter().format(_record()))

        assert data["message"] == "test message"
        assert data["level"] == "INFO"
        assert data["trace_id"] == "a" * 32
        assert data["span_id"] == "b" * 16
        assert data["route"] == "/api/search"
        assert data["component"] == "result_cache"

    def test_extra_fields_are_redacted(self):
        data = json.loads(JsonFormatter().format(_record(request_id="r-1", supabase_key="sk-123", apikey="k")))

        assert data["request_id"] == "r-1"
        assert data["supabase_key"] == "[REDACTED]"
        assert data["apikey"] == "[REDACTED]"

    def test_domain_fields_are_grouped(self):
        data = json.loads(JsonFormatter().format(_record(search_key="cats", cache_hit=True, tier="naive")))

        assert data["search"] == {"key": "cats", "cache_hit": True}
        assert data["engine"] == {"tier": "naive"}
        assert "search_key" not in data

    def test_long_messages_are_truncated(self):
        data = json.loads(JsonFormatter().format(_record("x" * 5000)))

        assert len(data["message"]) == JsonFormatter.MAX_MESSAGE_LEN + 3


@pytest.mark.unit
class TestConfigureLogging:
    def test_installs_single_json_handler(self):
        root = logging.getLogger()
        previous = root.handlers[:]
        try:
            configure_logging("debug", json_output=True, logger_levels={"search_gateway.adapters": "error"})

            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, JsonFormatter)
            assert root.level == logging.DEBUG
            assert logging.getLogger("search_gateway.adapters").level == logging.ERROR
            assert logging.getLogger("uvicorn.access").level == logging.WARNING
        finally:
            for handler in root.handlers[:]:
                root.removeHandler(handler)
            for handler in previous:
                root.addHandler(handler)
            logging.getLogger("search_gateway.adapters").setLevel(logging.NOTSET)


@pytest.mark.unit
class TestTracing:
    def test_create_span_records_error_status(self, monkeypatch):
        exporter = InMemorySpanExporter()
        provider = TracerProvider()
        provider.add_span_processor(SimpleSpanProcessor(exporter))
        monkeypatch.setitem(tracing_module._tracer_holder, "tracer", provider.get_tracer("test"))

        with pytest.raises(ValueError), create_span("search.resolve", attributes={"search.key": "cats"}):
            raise ValueError("boom")

        (span,) = exporter.get_finished_spans()
        assert span.name == "search.resolve"
        assert span.attributes["search.key"] == "cats"
        assert span.status.status_code is StatusCode.ERROR

    def test_create_span_updates_span_id(self, monkeypatch):
        provider = TracerProvider()
        monkeypatch.setitem(tracing_module._tracer_holder, "tracer", provider.get_tracer("test"))
        set_trace_context("c" * 32, "0" * 16)

        with create_span("work") as span:
            expected = format(span.get_span_context().span_id, "016x")
            assert get_trace_context()["span_id"] == expected

    def test_trace_exporter_disabled_without_endpoint(self):
        assert configure_trace_exporter("") is False

    def test_trace_exporter_attaches_processor(self):
        provider = TracerProvider()
        try:
            assert configure_trace_exporter("http://localhost:4318/v1/traces", provider) is True
        finally:
            provider.shutdown()


@pytest.mark.unit
class TestMetrics:
    def test_cache_events_are_exposed(self):
        CACHE_EVENTS.labels(outcome="hit").inc()

        body = get_metrics().decode()

        assert 'result_cache_events_total{outcome="hit"}' in body
        assert get_metrics_content_type().startswith("text/plain")
