"""Health endpoint factory."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from starlette.responses import JSONResponse

from search_gateway.domain.errors import SuggestionStoreError


if TYPE_CHECKING:
    from starlette.requests import Request

    from search_gateway.adapters.suggestion_store import AbstractSuggestionStore
    from search_gateway.service_layer.search_service import SearchOrchestrator


logger = logging.getLogger(__name__)


def build_health_endpoint(orchestrator: SearchOrchestrator, store: AbstractSuggestionStore):
    """Return a coroutine function reporting engine tier, cache size and store reachability.

    A naive engine tier is reported but does not make the service unhealthy;
    an unreachable suggestion store degrades it.
    """

    async def health_check(_: Request) -> JSONResponse:
        store_health: dict[str, object] = {"backend": store.name}
        try:
            await store.ping()
            store_health["status"] = "healthy"
        except SuggestionStoreError as exc:
            logger.warning("Suggestion store health check failed: %s", exc)
            store_health["status"] = "unhealthy"
            store_health["error"] = str(exc)

        overall_status = "healthy" if store_health["status"] == "healthy" else "degraded"

        return JSONResponse(
            {
                "status": overall_status,
                "engine": orchestrator.engine.describe(),
                "cache": orchestrator.cache.get_stats(),
                "suggestion_store": store_health,
                "single_flight": orchestrator.single_flight,
            }
        )

    return health_check
