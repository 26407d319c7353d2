"""OpenTelemetry tracing with Starlette middleware."""

from __future__ import annotations

from contextlib import contextmanager
import logging
from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import SpanKind, Status, StatusCode

from search_gateway.observability.context import (
    generate_span_id,
    get_trace_context,
    set_trace_context,
    update_span_id,
)
from search_gateway.observability.metrics import REQUEST_COUNT


if TYPE_CHECKING:
    from collections.abc import Generator

    from opentelemetry.trace import Span, Tracer
    from starlette.requests import Request
    from starlette.responses import Response

logger = logging.getLogger(__name__)

# Module-level tracer storage
_tracer_holder: dict[str, Tracer | None] = {"tracer": None}

TRACE_HEADER = "x-trace-id"
MAX_QUERY_ATTRIBUTE_LEN = 256


def init_tracing(
    service_name: str = "search-gateway",
    resource_attributes: dict[str, str] | None = None,
) -> TracerProvider:
    """Initialize OpenTelemetry tracing."""
    attributes = {"service.name": service_name}
    if resource_attributes:
        attributes.update(resource_attributes)
    provider = TracerProvider(resource=Resource.create(attributes))
    trace.set_tracer_provider(provider)
    _tracer_holder["tracer"] = trace.get_tracer(__name__)
    logger.info("Tracing initialized for service: %s", service_name)
    return provider


def configure_trace_exporter(endpoint: str, provider: TracerProvider | None = None) -> bool:
    """Attach an OTLP/HTTP span exporter when a collector endpoint is configured.

    Returns:
        True when an exporter was attached
    """
    if not endpoint:
        return False

    active_provider = provider or trace.get_tracer_provider()
    if not isinstance(active_provider, TracerProvider):
        active_provider = init_tracing()

    try:
        exporter = OTLPSpanExporter(endpoint=endpoint)
    except Exception as exc:
        logger.error("Failed to configure OTLP exporter: %s", exc, exc_info=True)
        return False

    active_provider.add_span_processor(BatchSpanProcessor(exporter))
    logger.info("OTLP trace export enabled to %s", endpoint)
    return True


def get_tracer() -> Tracer:
    """Get the configured tracer."""
    if _tracer_holder["tracer"] is None:
        init_tracing()
    return _tracer_holder["tracer"]  # type: ignore[return-value]


@contextmanager
def create_span(
    name: str,
    kind: SpanKind = SpanKind.INTERNAL,
    attributes: dict[str, Any] | None = None,
) -> Generator[Span, None, None]:
    """Create a traced span with context propagation."""
    tracer = get_tracer()
    with tracer.start_as_current_span(name, kind=kind) as span:
        if attributes:
            for key, value in attributes.items():
                span.set_attribute(key, value)

        ctx = span.get_span_context()
        update_span_id(format(ctx.span_id, "016x"))

        try:
            yield span
        except Exception as exc:
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            span.record_exception(exc)
            raise


class TraceContextMiddleware:
    """Starlette middleware for trace context propagation."""

    def __init__(self, app: Any) -> None:
        self.app = app

    async def __call__(self, scope: dict, receive: Any, send: Any) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        trace_id = headers.get(TRACE_HEADER.encode(), b"").decode() or None
        if not trace_id:
            trace_id = get_trace_context()["trace_id"]

        set_trace_context(trace_id, generate_span_id(), route=scope.get("path", ""))
        await self.app(scope, receive, send)


async def trace_request(request: Request, call_next: Any) -> Response:
    """Wrap every request in a server span and echo the trace id to the client.

    Search routes also record the raw query text, clipped to
    ``MAX_QUERY_ATTRIBUTE_LEN`` characters.
    """
    attributes: dict[str, Any] = {
        "http.method": request.method,
        "http.url": str(request.url),
        "http.route": request.url.path,
    }
    query = request.query_params.get("query")
    if query is not None and request.url.path.startswith("/api/"):
        attributes["search.query"] = query[:MAX_QUERY_ATTRIBUTE_LEN]

    with create_span("http.request", kind=SpanKind.SERVER, attributes=attributes) as span:
        try:
            response: Response = await call_next(request)
        except Exception as exc:
            REQUEST_COUNT.labels(route=request.url.path, status="500").inc()
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            span.record_exception(exc)
            raise

        span.set_attribute("http.status_code", response.status_code)
        response.headers[TRACE_HEADER] = get_trace_context()["trace_id"]
        REQUEST_COUNT.labels(route=request.url.path, status=str(response.status_code)).inc()
        if response.status_code >= 400:
            span.set_status(Status(StatusCode.ERROR, f"HTTP {response.status_code}"))
        return response
