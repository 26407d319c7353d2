"""Search orchestration layer.

Combines query parsing, result caching and engine dispatch behind one
interface, and paginates the full result set for the HTTP layer.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
import logging
import time
from typing import Any

import anyio

from search_gateway.adapters.engine import EngineAdapter
from search_gateway.domain.errors import InvalidQueryError
from search_gateway.domain.search import PageRequest, ParsedQuery, SearchOutcome, SearchResult, ServiceResult
from search_gateway.observability.metrics import SEARCH_LATENCY
from search_gateway.observability.tracing import create_span
from search_gateway.service_layer.pagination import paginate
from search_gateway.services.query_parser import QueryParser
from search_gateway.services.result_cache import ResultCache


logger = logging.getLogger(__name__)


class SearchOrchestrator:
    """High-level search orchestration service.

    At most one engine round trip happens per distinct effective key for the
    process lifetime, except when first requests for a key race; those may
    all reach the engine unless ``single_flight`` is enabled.
    """

    def __init__(
        self,
        engine: EngineAdapter,
        cache: ResultCache | None = None,
        parser: QueryParser | None = None,
        *,
        single_flight: bool = False,
    ):
        """Initialize the orchestrator with its collaborators.

        Args:
            engine: Adapter over the external search engine (never raises)
            cache: Result cache; a fresh in-memory cache when omitted
            parser: Query parser; the default QueryParser when omitted
            single_flight: Share one in-flight engine call between concurrent misses
        """
        self.engine = engine
        self.cache = cache if cache is not None else ResultCache()
        self.parser = parser or QueryParser()
        self.single_flight = single_flight
        self._in_flight: dict[str, asyncio.Task[ServiceResult]] = {}

    async def execute(self, raw_query: str, page: PageRequest) -> tuple[ServiceResult, PageRequest]:
        """Run a query and return the full ServiceResult with the page request.

        Raises:
            InvalidQueryError: when ``raw_query`` is empty or whitespace-only
        """
        outcome = await self.search(raw_query, page)
        return outcome.service_result, outcome.page_request

    async def search(self, raw_query: str, page_request: PageRequest) -> SearchOutcome:
        """Run a query and assemble the requested page."""
        parsed, key = self._prepare(raw_query)
        service_result, cache_hit = await self._resolve(key, parsed)
        page = paginate(service_result.results, page_request)

        logger.debug(
            "Returning %d of %d results for page %d",
            len(page.items),
            service_result.total_results,
            page_request.page_number,
        )
        return SearchOutcome(
            service_result=service_result,
            page_request=page_request,
            page=page,
            parsed_query=parsed,
            effective_key=key,
            cache_hit=cache_hit,
        )

    async def advanced_search(
        self,
        raw_query: str,
        filters: Mapping[str, Any] | None,
        page_request: PageRequest,
    ) -> SearchOutcome:
        """Search, then keep only results whose fields match every filter.

        The cache keeps the unfiltered result set, so differently filtered
        requests for one query share a single engine call. A list filter value
        matches when the field equals any of its members.
        """
        if filters is not None and not isinstance(filters, Mapping):
            raise InvalidQueryError("Filters must be an object")

        parsed, key = self._prepare(raw_query)
        service_result, cache_hit = await self._resolve(key, parsed)
        active_filters = dict(filters or {})
        filtered = [result for result in service_result.results if _matches_filters(result, active_filters)]
        logger.info(
            "Advanced search for %r kept %d of %d results using filters %s",
            key,
            len(filtered),
            service_result.total_results,
            sorted(active_filters),
        )

        return SearchOutcome(
            service_result=service_result,
            page_request=page_request,
            page=paginate(filtered, page_request),
            parsed_query=parsed,
            effective_key=key,
            cache_hit=cache_hit,
        )

    def _prepare(self, raw_query: str) -> tuple[ParsedQuery, str]:
        if not isinstance(raw_query, str) or not raw_query.strip():
            raise InvalidQueryError()

        parsed = self.parser.parse(raw_query)
        key = parsed.effective_key(raw_query)
        if len(parsed.phrases) > 1:
            logger.debug("Using first phrase %r; ignoring %s", key, parsed.phrases[1:])
        return parsed, key

    async def _resolve(self, key: str, parsed: ParsedQuery) -> tuple[ServiceResult, bool]:
        with create_span(
            "search.resolve",
            attributes={"search.key": key, "search.phrase": parsed.is_phrase_search},
        ) as span:
            cached = self.cache.get(key)
            if cached is not None:
                span.set_attribute("search.cache_hit", True)
                logger.info(
                    "Cache HIT for query %r; using stored time %.3fs",
                    key,
                    cached.compute_time_seconds,
                    extra={"search_key": key, "cache_hit": True},
                )
                return cached, True

            span.set_attribute("search.cache_hit", False)
            logger.info(
                "Cache MISS for query %r; performing %s search",
                key,
                "PHRASE" if parsed.is_phrase_search else "REGULAR",
                extra={"search_key": key, "cache_hit": False},
            )
            # Shielded: a disconnecting client must not cancel the engine call or the cache write.
            return await asyncio.shield(self._spawn(key, parsed.is_phrase_search)), False

    def _spawn(self, key: str, is_phrase_search: bool) -> asyncio.Task[ServiceResult]:
        if not self.single_flight:
            return asyncio.ensure_future(self._compute(key, is_phrase_search))

        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._compute(key, is_phrase_search))
            self._in_flight[key] = task
            task.add_done_callback(lambda _done, in_flight_key=key: self._in_flight.pop(in_flight_key, None))
        else:
            logger.debug("Joining in-flight lookup for %r", key)
        return task

    async def _compute(self, key: str, is_phrase_search: bool) -> ServiceResult:
        mode = "phrase" if is_phrase_search else "keyword"
        lookup = self.engine.phrase_search if is_phrase_search else self.engine.search

        start = time.perf_counter()
        results = await anyio.to_thread.run_sync(lookup, key)
        elapsed = time.perf_counter() - start
        SEARCH_LATENCY.labels(mode=mode).observe(elapsed)

        tokens = await anyio.to_thread.run_sync(self.engine.tokenize, key)
        service_result = ServiceResult(
            results=results,
            total_results=len(results),
            tokens=tokens,
            compute_time_seconds=elapsed,
        )
        self.cache.put(key, service_result)
        logger.info(
            "Search tokenized %r into %s; %d total results in %.3fs",
            key,
            tokens,
            service_result.total_results,
            elapsed,
            extra={"search_key": key, "search_mode": mode},
        )
        return service_result


def _matches_filters(result: SearchResult, filters: Mapping[str, Any]) -> bool:
    for field_name, expected in filters.items():
        if field_name not in result:
            return False
        actual = result[field_name]
        if isinstance(expected, list):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True
