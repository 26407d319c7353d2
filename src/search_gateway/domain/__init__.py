"""Domain layer - pure query-serving concepts with no infrastructure dependencies.

Following Cosmic Python Chapter 2 (Repository Pattern) and Chapter 7 (Aggregates),
this layer contains:
- Value Objects: immutable query intents, result sets and pages
- The error taxonomy shared by adapters, services and the HTTP layer
"""

from search_gateway.domain.errors import (
    EngineUnavailableError,
    InvalidQueryError,
    SearchGatewayError,
    SuggestionStoreError,
)
from search_gateway.domain.search import (
    CacheEntry,
    Page,
    PageRequest,
    ParsedQuery,
    SearchOutcome,
    SearchResult,
    ServiceResult,
)


__all__ = [
    "CacheEntry",
    "EngineUnavailableError",
    "InvalidQueryError",
    "Page",
    "PageRequest",
    "ParsedQuery",
    "SearchGatewayError",
    "SearchOutcome",
    "SearchResult",
    "ServiceResult",
    "SuggestionStoreError",
]
