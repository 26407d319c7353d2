"""Main ASGI application entry point.

Routes:
    GET  /api/search                  paginated keyword or phrase search
    POST /api/search/advanced         search plus field filters
    GET  /api/search/suggestions      stored suggestions containing a prefix
    POST /api/search/save-search      remember a query for future suggestions
    GET  /health, /metrics            operations

Usage:
    python -m search_gateway.app

    # Bind a primary engine and a SQLite suggestion store
    SEARCH_ENGINE_FACTORY=my_engine:build SUGGESTION_BACKEND=sqlite python -m search_gateway.app
"""

import logging

from pydantic import ValidationError
from starlette.applications import Starlette

from .app_builder import AppBuilder
from .config import Settings


logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> Starlette:
    """Create the search gateway application."""
    return AppBuilder(settings).build()


def main() -> None:
    """Main entry point for the search gateway server."""
    import uvicorn

    try:
        settings = Settings()
    except ValidationError as exc:
        logging.basicConfig(level=logging.ERROR)
        logger.error("Configuration is invalid: %s", exc)
        raise SystemExit(1) from exc

    app = create_app(settings)

    logger.info("Starting search gateway on %s:%d", settings.host, settings.port)
    logger.info("Health check: http://%s:%d/health", settings.host, settings.port)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        log_config=None,  # Keep the logging configured by AppBuilder
        limit_concurrency=settings.uvicorn_limit_concurrency,
    )


if __name__ == "__main__":
    main()
