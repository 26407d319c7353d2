"""Composable builder for the search gateway Starlette app."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, suppress
import json
import logging
from typing import TYPE_CHECKING, Any

from starlette.applications import Starlette
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from search_gateway.adapters.engine import EngineAdapter
from search_gateway.adapters.suggestion_store import AbstractSuggestionStore, create_suggestion_store
from search_gateway.domain.errors import InvalidQueryError, SuggestionStoreError
from search_gateway.observability import (
    configure_logging,
    configure_trace_exporter,
    get_metrics,
    get_metrics_content_type,
    init_metrics,
    init_tracing,
)
from search_gateway.observability.tracing import TraceContextMiddleware, trace_request
from search_gateway.runtime.health import build_health_endpoint
from search_gateway.runtime.signals import install_shutdown_signals
from search_gateway.service_layer.pagination import build_page_request, parse_positive_int
from search_gateway.service_layer.search_service import SearchOrchestrator
from search_gateway.service_layer.suggestion_service import SuggestionGateway
from search_gateway.services.result_cache import ResultCache

from .config import Settings


if TYPE_CHECKING:
    from starlette.requests import Request


logger = logging.getLogger(__name__)
_SHUTDOWN_CLOSE_TIMEOUT_S = 10.0

WELCOME_MESSAGE = "Welcome to the Search Gateway API"


class AppBuilder:
    """Builds the ASGI app from Settings and optional injected collaborators."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        engine_adapter: EngineAdapter | None = None,
        suggestion_store: AbstractSuggestionStore | None = None,
        result_cache: ResultCache | None = None,
        configure_observability: bool = True,
    ) -> None:
        self.settings = settings or Settings()
        self.engine_adapter = engine_adapter
        self.suggestion_store = suggestion_store
        self.result_cache = result_cache
        self.configure_observability = configure_observability
        self.orchestrator: SearchOrchestrator | None = None
        self.suggestions: SuggestionGateway | None = None
        self.routes: list[Route] = []

    def build(self) -> Starlette:
        """Build and return the Starlette application."""
        settings = self.settings
        if self.configure_observability:
            self._init_observability()

        engine_adapter = self.engine_adapter or EngineAdapter.from_factory_path(settings.get_engine_factory_path())
        store = self.suggestion_store or create_suggestion_store(settings)
        self.suggestion_store = store

        self.orchestrator = SearchOrchestrator(
            engine_adapter,
            self.result_cache,
            single_flight=settings.search_single_flight,
        )
        self.suggestions = SuggestionGateway(store, default_limit=settings.suggestion_default_limit)

        self.routes = self._build_routes()
        app = Starlette(
            debug=settings.is_debug(),
            routes=self.routes,
            lifespan=self._build_lifespan_manager(),
        )
        app.add_middleware(BaseHTTPMiddleware, dispatch=trace_request)
        app.add_middleware(TraceContextMiddleware)
        app.state.orchestrator = self.orchestrator
        app.state.suggestions = self.suggestions

        install_shutdown_signals(app)
        logger.info(
            "Search gateway initialized (engine tier=%s, suggestion store=%s)",
            engine_adapter.tier.value,
            store.name,
        )
        return app

    def _init_observability(self) -> None:
        settings = self.settings
        configure_logging(
            level=settings.log_level,
            json_output=settings.log_json,
            access_log=settings.access_log,
        )
        init_metrics(service_name=settings.service_name)
        provider = init_tracing(service_name=settings.service_name)
        configure_trace_exporter(settings.otlp_endpoint, provider)

    def _build_routes(self) -> list[Route]:
        assert self.orchestrator is not None
        assert self.suggestion_store is not None

        suggestions_endpoint = self._build_suggestions_endpoint()
        save_search_endpoint = self._build_save_search_endpoint()
        return [
            Route("/", endpoint=self._build_welcome_endpoint(), methods=["GET"]),
            Route("/api/search", endpoint=self._build_search_endpoint(), methods=["GET"]),
            Route("/api/search/advanced", endpoint=self._build_advanced_search_endpoint(), methods=["POST"]),
            Route("/api/search/suggestions", endpoint=suggestions_endpoint, methods=["GET"]),
            Route("/api/search/save-search", endpoint=save_search_endpoint, methods=["POST"]),
            Route("/api/suggestions", endpoint=suggestions_endpoint, methods=["GET"]),
            Route("/api/save-search", endpoint=save_search_endpoint, methods=["POST"]),
            Route("/api/routes", endpoint=self._build_routes_listing_endpoint(), methods=["GET"]),
            Route(
                "/health",
                endpoint=build_health_endpoint(self.orchestrator, self.suggestion_store),
                methods=["GET"],
            ),
            Route("/metrics", endpoint=self._build_metrics_endpoint(), methods=["GET"]),
        ]

    def _build_welcome_endpoint(self):
        async def welcome_endpoint(_: Request) -> JSONResponse:
            return JSONResponse({"message": WELCOME_MESSAGE})

        return welcome_endpoint

    def _build_routes_listing_endpoint(self):
        async def routes_endpoint(_: Request) -> JSONResponse:
            listing = [
                {"path": route.path, "methods": sorted(method.lower() for method in route.methods or [])}
                for route in self.routes
            ]
            return JSONResponse(listing)

        return routes_endpoint

    def _build_metrics_endpoint(self):
        async def metrics_endpoint(_: Request) -> Response:
            return Response(content=get_metrics(), media_type=get_metrics_content_type())

        return metrics_endpoint

    def _build_search_endpoint(self):
        orchestrator = self.orchestrator
        assert orchestrator is not None
        default_limit = self.settings.search_default_limit

        async def search_endpoint(request: Request) -> JSONResponse:
            params = request.query_params
            page_request = build_page_request(params.get("page"), params.get("limit"), default_limit=default_limit)

            try:
                outcome = await orchestrator.search(params.get("query", ""), page_request)
            except InvalidQueryError as exc:
                return JSONResponse({"success": False, "message": exc.message}, status_code=400)
            except Exception as exc:
                logger.error("Search failed: %s", exc, exc_info=True)
                return JSONResponse(
                    {"success": False, "message": "An error occurred during search", "error": str(exc)},
                    status_code=500,
                )

            service_result = outcome.service_result
            return JSONResponse(
                {
                    "success": True,
                    "data": outcome.page.items,
                    "totalPages": outcome.page.total_pages,
                    "currentPage": outcome.page.current_page,
                    "totalResults": service_result.total_results,
                    "tokens": service_result.tokens,
                    "searchTimeSec": service_result.compute_time_seconds,
                }
            )

        return search_endpoint

    def _build_advanced_search_endpoint(self):
        orchestrator = self.orchestrator
        assert orchestrator is not None
        default_limit = self.settings.advanced_default_limit

        async def advanced_search_endpoint(request: Request) -> JSONResponse:
            body = await _read_json_object(request)
            if body is None:
                return JSONResponse({"success": False, "message": "Request body must be a JSON object"}, status_code=400)

            page_request = build_page_request(body.get("page"), body.get("limit"), default_limit=default_limit)
            try:
                outcome = await orchestrator.advanced_search(body.get("query", ""), body.get("filters"), page_request)
            except InvalidQueryError as exc:
                return JSONResponse({"success": False, "message": exc.message}, status_code=400)
            except Exception as exc:
                logger.error("Advanced search failed: %s", exc, exc_info=True)
                return JSONResponse(
                    {"success": False, "message": "An error occurred during advanced search", "error": str(exc)},
                    status_code=500,
                )

            return JSONResponse(
                {
                    "success": True,
                    "data": {
                        "results": outcome.page.items,
                        "totalResults": outcome.page.total_results,
                        "totalPages": outcome.page.total_pages,
                        "page": outcome.page.current_page,
                        "limit": outcome.page.page_size,
                        "tokens": outcome.service_result.tokens,
                    },
                }
            )

        return advanced_search_endpoint

    def _build_suggestions_endpoint(self):
        suggestions = self.suggestions
        assert suggestions is not None

        async def suggestions_endpoint(request: Request) -> JSONResponse:
            params = request.query_params
            limit = parse_positive_int(params.get("limit"), suggestions.default_limit)

            try:
                data = await suggestions.prefix_lookup(params.get("query", ""), limit)
            except InvalidQueryError as exc:
                return JSONResponse({"success": False, "message": exc.message}, status_code=400)
            except SuggestionStoreError as exc:
                logger.error("Suggestion lookup failed: %s", exc)
                return JSONResponse(
                    {"success": False, "message": "Error accessing suggestion database", "error": str(exc)},
                    status_code=500,
                )
            except Exception as exc:
                logger.error("Suggestions failed: %s", exc, exc_info=True)
                return JSONResponse(
                    {"success": False, "message": "An error occurred while fetching suggestions", "error": str(exc)},
                    status_code=500,
                )

            return JSONResponse({"success": True, "data": data, "source": "database"})

        return suggestions_endpoint

    def _build_save_search_endpoint(self):
        suggestions = self.suggestions
        assert suggestions is not None

        async def save_search_endpoint(request: Request) -> JSONResponse:
            body = await _read_json_object(request)
            if body is None:
                return JSONResponse({"success": False, "message": "Request body must be a JSON object"}, status_code=400)

            try:
                await suggestions.save_search(body.get("query", ""))
            except InvalidQueryError as exc:
                return JSONResponse({"success": False, "message": exc.message}, status_code=400)
            except Exception as exc:
                logger.error("Save search failed: %s", exc, exc_info=not isinstance(exc, SuggestionStoreError))
                return JSONResponse(
                    {
                        "success": False,
                        "message": "An error occurred while saving the search query",
                        "error": str(exc),
                    },
                    status_code=500,
                )

            return JSONResponse({"success": True, "message": "Search query processed successfully"})

        return save_search_endpoint

    def _build_lifespan_manager(self):
        store = self.suggestion_store
        assert store is not None

        @asynccontextmanager
        async def lifespan(app: Starlette):
            closed = False

            async def close_store(reason: str) -> None:
                nonlocal closed
                if closed:
                    return
                closed = True
                logger.info("Closing %s suggestion store (%s)", store.name, reason)
                await store.close()

            shutdown_monitor: asyncio.Task | None = None
            shutdown_event = getattr(app.state, "shutdown_event", None)
            if isinstance(shutdown_event, asyncio.Event):

                async def watch_shutdown() -> None:
                    await shutdown_event.wait()
                    await close_store("signal")

                shutdown_monitor = asyncio.create_task(watch_shutdown())

            try:
                yield
            finally:
                if shutdown_monitor is not None:
                    shutdown_monitor.cancel()
                    with suppress(asyncio.CancelledError):
                        await shutdown_monitor
                try:
                    await asyncio.wait_for(asyncio.shield(close_store("lifespan-exit")), timeout=_SHUTDOWN_CLOSE_TIMEOUT_S)
                except asyncio.TimeoutError:
                    logger.warning("Suggestion store close timed out after %ss", _SHUTDOWN_CLOSE_TIMEOUT_S)

        return lifespan


async def _read_json_object(request: Request) -> dict[str, Any] | None:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return body if isinstance(body, dict) else None
