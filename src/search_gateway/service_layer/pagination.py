"""Pagination of full result sets.

Slicing is recomputed on every request; only the unpaginated result set is
ever cached.
"""

from collections.abc import Sequence

from search_gateway.domain.search import Page, PageRequest, SearchResult


def paginate(results: Sequence[SearchResult], page_request: PageRequest) -> Page:
    """Slice ``results`` for the requested page.

    Out-of-range pages yield an empty slice, never an error.
    """
    total_results = len(results)
    items = list(results[page_request.start_index : page_request.end_index])
    return Page(
        items=items,
        current_page=page_request.page_number,
        page_size=page_request.page_size,
        total_pages=page_request.total_pages(total_results),
        total_results=total_results,
    )


def parse_positive_int(raw_value: object, default: int) -> int:
    """Parse a client-supplied page or limit value.

    Missing, non-numeric, or non-positive values fall back to ``default``.
    """
    if raw_value is None or isinstance(raw_value, bool):
        return default
    try:
        parsed = int(str(raw_value).strip())
    except ValueError:
        return default
    return parsed if parsed >= 1 else default


def build_page_request(raw_page: object, raw_limit: object, *, default_limit: int) -> PageRequest:
    """Build a PageRequest from raw query-string or JSON values."""
    return PageRequest(
        page_number=parse_positive_int(raw_page, 1),
        page_size=parse_positive_int(raw_limit, default_limit),
    )
