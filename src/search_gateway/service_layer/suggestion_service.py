"""Suggestion lookups and deduplicated saves over a suggestion store."""

from __future__ import annotations

import logging

from search_gateway.adapters.suggestion_store import AbstractSuggestionStore
from search_gateway.domain.errors import InvalidQueryError
from search_gateway.observability.tracing import create_span


logger = logging.getLogger(__name__)


class SuggestionGateway:
    """Thin facade over an AbstractSuggestionStore.

    Store failures propagate as SuggestionStoreError.
    """

    def __init__(self, store: AbstractSuggestionStore, *, default_limit: int = 5) -> None:
        self.store = store
        self.default_limit = default_limit

    async def prefix_lookup(self, prefix: str, limit: int | None = None) -> list[str]:
        """Return stored texts containing ``prefix``, case-insensitively, in store order."""
        if not isinstance(prefix, str) or not prefix:
            raise InvalidQueryError("Query prefix is required")

        cap = limit if limit is not None and limit > 0 else self.default_limit
        with create_span("suggestions.lookup", attributes={"suggestions.limit": cap}):
            suggestions = await self.store.search(prefix, cap)
        logger.debug("Found %d suggestions for %r", len(suggestions), prefix)
        return suggestions[:cap]

    async def exists(self, text: str) -> bool:
        return await self.store.exists(text)

    async def insert(self, text: str) -> None:
        await self.store.insert(text)

    async def save_search(self, text: str) -> bool:
        """Store ``text`` unless an identical row exists.

        Returns:
            True if a new row was created
        """
        if not isinstance(text, str) or not text.strip():
            raise InvalidQueryError("Search query is required")

        # Stored exactly as sent; only blank input is rejected.
        with create_span("suggestions.save", attributes={"suggestions.text_length": len(text)}):
            if await self.store.exists(text):
                logger.info("Search %r already saved; skipping insert", text)
                return False

            created = await self.store.insert(text)
        if created:
            logger.info("Saved search %r", text)
        return created
