"""Endpoint tests for the AppBuilder-built Starlette app."""

from __future__ import annotations

import pytest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.testclient import TestClient

from search_gateway.adapters.engine import EngineAdapter
from search_gateway.adapters.suggestion_store import AbstractSuggestionStore, InMemorySuggestionStore
from search_gateway.app_builder import WELCOME_MESSAGE, AppBuilder
from search_gateway.domain.errors import SuggestionStoreError
from search_gateway.observability.tracing import TraceContextMiddleware, trace_request
from search_gateway.services.result_cache import ResultCache


pytestmark = pytest.mark.unit


class UnreachableStore(AbstractSuggestionStore):
    name = "unreachable"

    async def search(self, text, limit):
        raise SuggestionStoreError("search", "connection refused")

    async def exists(self, text):
        raise SuggestionStoreError("exists", "connection refused")

    async def insert(self, text):
        raise SuggestionStoreError("insert", "connection refused")


class ClosingStore(InMemorySuggestionStore):
    def __init__(self):
        super().__init__()
        self.close_calls = 0

    async def close(self):
        self.close_calls += 1


def _build(settings, engine_adapter, store=None, cache=None):
    builder = AppBuilder(
        settings,
        engine_adapter=engine_adapter,
        suggestion_store=store or InMemorySuggestionStore(["machine learning", "Machine vision", "cats"]),
        result_cache=cache,
        configure_observability=False,
    )
    return builder, builder.build()


@pytest.fixture
def client(test_settings, engine_adapter):
    _, app = _build(test_settings, engine_adapter)
    with TestClient(app) as test_client:
        yield test_client


class TestSearchEndpoint:
    def test_phrase_query_end_to_end(self, client, fake_engine):
        response = client.get("/api/search", params={"query": '"machine learning"'})

        assert response.status_code == 200
        payload = response.json()
        assert payload["success"] is True
        assert [doc["id"] for doc in payload["data"]] == [1, 2]
        assert payload["tokens"] == ["tok:machine", "tok:learning"]
        assert payload["totalResults"] == 2
        assert payload["totalPages"] == 1
        assert payload["currentPage"] == 1
        assert isinstance(payload["searchTimeSec"], float)
        assert ("phrase_search", "machine learning") in fake_engine.calls

    def test_pagination_params(self, client):
        response = client.get("/api/search", params={"query": "learning", "page": "2", "limit": "2"})

        payload = response.json()
        assert [doc["id"] for doc in payload["data"]] == [3]
        assert payload["currentPage"] == 2
        assert payload["totalPages"] == 2
        assert payload["totalResults"] == 3

    def test_invalid_pagination_falls_back_to_defaults(self, client):
        payload = client.get("/api/search", params={"query": "learning", "page": "zero", "limit": "-5"}).json()

        assert payload["currentPage"] == 1
        assert len(payload["data"]) == 3

    def test_second_request_reuses_cached_time(self, client, fake_engine):
        first = client.get("/api/search", params={"query": "cats"}).json()
        second = client.get("/api/search", params={"query": "cats"}).json()

        assert second["searchTimeSec"] == first["searchTimeSec"]
        assert fake_engine.count("search") == 1

    @pytest.mark.parametrize("params", [{}, {"query": ""}, {"query": "   "}])
    def test_missing_query_is_400(self, client, params):
        response = client.get("/api/search", params=params)

        assert response.status_code == 400
        assert response.json() == {"success": False, "message": "Search query is required"}

    def test_unexpected_error_is_500(self, test_settings, engine_adapter):
        class ExplodingCache(ResultCache):
            def get(self, key):
                raise RuntimeError("cache corrupted")

        _, app = _build(test_settings, engine_adapter, cache=ExplodingCache())
        with TestClient(app) as test_client:
            response = test_client.get("/api/search", params={"query": "cats"})

        assert response.status_code == 500
        payload = response.json()
        assert payload["success"] is False
        assert payload["message"]
        assert payload["error"] == "cache corrupted"

    def test_naive_tier_returns_empty_results(self, test_settings):
        _, app = _build(test_settings, EngineAdapter.from_engine(None))
        with TestClient(app) as test_client:
            payload = test_client.get("/api/search", params={"query": "Hello, World"}).json()

        assert payload["success"] is True
        assert payload["data"] == []
        assert payload["tokens"] == ["hello", "world"]
        assert payload["totalPages"] == 0


class TestAdvancedSearchEndpoint:
    def test_filters_and_pagination(self, client):
        response = client.post(
            "/api/search/advanced",
            json={"query": "machine", "filters": {"category": "ml"}, "page": 1, "limit": 1},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert [doc["id"] for doc in data["results"]] == [1]
        assert data["totalResults"] == 2
        assert data["totalPages"] == 2
        assert data["page"] == 1
        assert data["limit"] == 1
        assert data["tokens"] == ["tok:machine"]

    def test_default_limit_is_ten(self, client):
        data = client.post("/api/search/advanced", json={"query": "machine"}).json()["data"]

        assert data["limit"] == 10

    def test_missing_query_is_400(self, client):
        response = client.post("/api/search/advanced", json={"filters": {}})

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_non_json_body_is_400(self, client):
        response = client.post("/api/search/advanced", content=b"not json", headers={"content-type": "application/json"})

        assert response.status_code == 400


class TestSuggestionEndpoints:
    @pytest.mark.parametrize("path", ["/api/search/suggestions", "/api/suggestions"])
    def test_lookup(self, client, path):
        response = client.get(path, params={"query": "mach", "limit": "5"})

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "data": ["machine learning", "Machine vision"],
            "source": "database",
        }

    def test_missing_query_is_400(self, client):
        response = client.get("/api/search/suggestions")

        assert response.status_code == 400
        assert response.json()["success"] is False

    @pytest.mark.parametrize("path", ["/api/search/save-search", "/api/save-search"])
    def test_save_search_is_idempotent(self, test_settings, engine_adapter, path):
        store = InMemorySuggestionStore()
        _, app = _build(test_settings, engine_adapter, store=store)
        with TestClient(app) as test_client:
            first = test_client.post(path, json={"query": "deep learning"})
            second = test_client.post(path, json={"query": "deep learning"})

        assert first.status_code == 200
        assert second.status_code == 200
        assert first.json() == {"success": True, "message": "Search query processed successfully"}
        assert store.rows == ["deep learning"]

    def test_save_search_blank_query_is_400(self, client):
        response = client.post("/api/search/save-search", json={"query": "  "})

        assert response.status_code == 400
        assert response.json() == {"success": False, "message": "Search query is required"}

    def test_store_failures_are_500(self, test_settings, engine_adapter):
        _, app = _build(test_settings, engine_adapter, store=UnreachableStore())
        with TestClient(app) as test_client:
            lookup = test_client.get("/api/search/suggestions", params={"query": "cats"})
            save = test_client.post("/api/search/save-search", json={"query": "cats"})

        assert lookup.status_code == 500
        assert lookup.json()["error"] == "connection refused"
        assert save.status_code == 500
        assert save.json()["success"] is False
        assert save.json()["error"] == "connection refused"


class TestOperationalEndpoints:
    def test_welcome(self, client):
        assert client.get("/").json() == {"message": WELCOME_MESSAGE}

    def test_routes_listing(self, client):
        routes = {entry["path"]: entry["methods"] for entry in client.get("/api/routes").json()}

        assert "get" in routes["/api/search"]
        assert routes["/api/search/advanced"] == ["post"]
        assert "/api/save-search" in routes
        assert "/health" in routes

    def test_health_reports_engine_and_cache(self, client):
        client.get("/api/search", params={"query": "cats"})

        payload = client.get("/health").json()

        assert payload["status"] == "healthy"
        assert payload["engine"]["tier"] == "primary"
        assert payload["cache"]["entries"] == 1
        assert payload["suggestion_store"] == {"backend": "memory", "status": "healthy"}

    def test_health_degraded_when_store_unreachable(self, test_settings, engine_adapter):
        _, app = _build(test_settings, engine_adapter, store=UnreachableStore())
        with TestClient(app) as test_client:
            payload = test_client.get("/health").json()

        assert payload["status"] == "degraded"
        assert payload["suggestion_store"]["status"] == "unhealthy"

    def test_trace_id_header_is_echoed(self, client):
        response = client.get("/", headers={"x-trace-id": "f" * 32})

        assert response.headers["x-trace-id"] == "f" * 32

    def test_lifespan_exit_closes_store_once(self, test_settings, engine_adapter):
        store = ClosingStore()
        _, app = _build(test_settings, engine_adapter, store=store)
        with TestClient(app) as test_client:
            test_client.get("/")
            assert store.close_calls == 0

        assert store.close_calls == 1

    def test_trace_middlewares_are_registered_outermost_first(self, test_settings, engine_adapter):
        _, app = _build(test_settings, engine_adapter)

        assert [entry.cls for entry in app.user_middleware] == [TraceContextMiddleware, BaseHTTPMiddleware]
        assert app.user_middleware[1].kwargs == {"dispatch": trace_request}

    def test_metrics_exposition(self, client):
        client.get("/api/search", params={"query": "cats"})

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "result_cache_events_total" in response.text
        assert "http_requests_total" in response.text
