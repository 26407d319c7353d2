"""Service layer - query-serving use cases.

- Search orchestration over the parser, cache and engine adapter
- Pagination of complete result sets
- Suggestion lookups and deduplicated saves
"""

from .pagination import build_page_request, paginate, parse_positive_int
from .search_service import SearchOrchestrator
from .suggestion_service import SuggestionGateway


__all__ = [
    "SearchOrchestrator",
    "SuggestionGateway",
    "build_page_request",
    "paginate",
    "parse_positive_int",
]
