"""Domain models for query serving.

Following Cosmic Python principles:
- Value Objects are immutable (frozen=True)
- Domain logic lives in domain layer
- No infrastructure dependencies

Result rows are opaque to this layer: the engine decides their fields, so they
are carried as plain mappings and never reshaped.
"""

from datetime import datetime, timezone
import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


SearchResult = dict[str, Any]


class ParsedQuery(BaseModel):
    """Value object holding the structured intent of a raw query string."""

    model_config = ConfigDict(frozen=True)

    phrases: list[str] = Field(default_factory=list)
    residual: str = ""
    is_phrase_search: bool = False
    has_quoted_span: bool = False

    def effective_key(self, raw_query: str) -> str:
        """Return the string used for cache addressing and engine dispatch.

        Only the first phrase is honoured; later phrases are dropped. When a
        quoted span was stripped without yielding a phrase, the residual is the
        key. Queries with no quoted span at all are keyed on their raw text
        verbatim so that whitespace differences stay distinct keys.
        """
        if self.is_phrase_search:
            return self.phrases[0]
        if self.has_quoted_span:
            return self.residual or raw_query
        return raw_query if raw_query else self.residual


class ServiceResult(BaseModel):
    """The full, unpaginated outcome of one engine lookup.

    Immutable once stored in the result cache.
    """

    model_config = ConfigDict(frozen=True)

    results: list[SearchResult] = Field(default_factory=list)
    total_results: int = 0
    tokens: list[str] = Field(default_factory=list)
    compute_time_seconds: float = 0.0


class CacheEntry(BaseModel):
    """A stored ServiceResult addressed by its effective key."""

    model_config = ConfigDict(frozen=True)

    effective_key: str
    service_result: ServiceResult
    stored_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class PageRequest(BaseModel):
    """Client pagination parameters (1-based page number)."""

    model_config = ConfigDict(frozen=True)

    page_number: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1)

    @property
    def start_index(self) -> int:
        return (self.page_number - 1) * self.page_size

    @property
    def end_index(self) -> int:
        return self.page_number * self.page_size

    def total_pages(self, total_results: int) -> int:
        return math.ceil(total_results / self.page_size)


class Page(BaseModel):
    """A slice of a result set plus the counters clients render."""

    model_config = ConfigDict(frozen=True)

    items: list[SearchResult] = Field(default_factory=list)
    current_page: int
    page_size: int
    total_pages: int
    total_results: int


class SearchOutcome(BaseModel):
    """What the orchestrator hands back to the HTTP layer."""

    model_config = ConfigDict(frozen=True)

    service_result: ServiceResult
    page_request: PageRequest
    page: Page
    parsed_query: ParsedQuery
    effective_key: str
    cache_hit: bool = False
