"""Adapters layer - external collaborators behind stable interfaces.

The search engine is bound through a ranked provider chain; suggestion
texts live in a pluggable store.
"""

from .engine import (
    CapabilityProvider,
    EngineAdapter,
    EngineTier,
    NaiveTokenizer,
    NaiveTokenizerProvider,
    PrimaryEngineProvider,
    SearchEngine,
    TierBinding,
    resolve_binding,
)
from .suggestion_store import (
    AbstractSuggestionStore,
    InMemorySuggestionStore,
    SqliteSuggestionStore,
    SupabaseSuggestionStore,
    create_suggestion_store,
)


__all__ = [
    "AbstractSuggestionStore",
    "CapabilityProvider",
    "EngineAdapter",
    "EngineTier",
    "InMemorySuggestionStore",
    "NaiveTokenizer",
    "NaiveTokenizerProvider",
    "PrimaryEngineProvider",
    "SearchEngine",
    "SqliteSuggestionStore",
    "SupabaseSuggestionStore",
    "TierBinding",
    "create_suggestion_store",
    "resolve_binding",
]
