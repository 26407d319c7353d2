"""Stateless and cache services used by the search orchestrator."""

from .query_parser import QueryParser
from .result_cache import AbstractCacheBackend, InMemoryCacheBackend, ResultCache


__all__ = [
    "AbstractCacheBackend",
    "InMemoryCacheBackend",
    "QueryParser",
    "ResultCache",
]
