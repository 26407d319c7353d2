"""Search engine adapter with a tiered capability chain.

The primary engine is an external collaborator exposing ``tokenize``,
``search`` and ``phrase_search``. Binding happens once: a ranked list of
capability providers is walked until one yields a binding. The last provider
is the naive local tokenizer, which always binds but offers no ranked search.

No exception crosses this module's public methods. Engine failures are
logged, counted, and answered with a degraded but valid value.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
import importlib
import inspect
import logging
import re
from typing import Any, Protocol, runtime_checkable

from search_gateway.domain.errors import EngineUnavailableError
from search_gateway.domain.search import SearchResult
from search_gateway.observability.metrics import ENGINE_FALLBACKS


logger = logging.getLogger(__name__)

ENGINE_CAPABILITIES = ("tokenize", "search", "phrase_search")


class EngineTier(str, Enum):
    """Ranked fallback levels of the adapter."""

    PRIMARY = "primary"
    NAIVE = "naive"


@runtime_checkable
class SearchEngine(Protocol):
    """Capability surface expected from the external engine."""

    def tokenize(self, text: str) -> Iterable[str]:  # pragma: no cover - interface definition
        ...

    def search(self, query: str) -> Iterable[Mapping[str, Any]]:  # pragma: no cover - interface definition
        ...

    def phrase_search(self, phrase: str) -> Iterable[Mapping[str, Any]]:  # pragma: no cover - interface definition
        ...


class NaiveTokenizer:
    """Lower-cases text and splits on whitespace and light punctuation."""

    SPLIT_PATTERN = re.compile(r"[\s,.:;?!-]+")

    def __call__(self, text: str) -> list[str]:
        if not text:
            return []
        return [token for token in self.SPLIT_PATTERN.split(text.lower()) if token]


@dataclass(frozen=True)
class TierBinding:
    """The capability set selected for the process lifetime."""

    tier: EngineTier
    engine: SearchEngine | None = None
    source: str = ""


class CapabilityProvider(ABC):
    """One rung of the fallback ladder."""

    tier: EngineTier

    @abstractmethod
    def bind(self) -> TierBinding | None:
        """Return a binding, or None to hand over to the next provider."""
        raise NotImplementedError


class PrimaryEngineProvider(CapabilityProvider):
    """Binds an injected engine or one loaded from a ``module:attribute`` path."""

    tier = EngineTier.PRIMARY

    def __init__(
        self,
        engine: object | None = None,
        *,
        factory_path: tuple[str, str] | None = None,
    ) -> None:
        self._engine = engine
        self._factory_path = factory_path
        self.failure: EngineUnavailableError | None = None

    def bind(self) -> TierBinding | None:
        try:
            engine, source = self._load()
            _check_capabilities(engine)
        except EngineUnavailableError as exc:
            self.failure = exc
            logger.warning("Primary search engine unavailable (%s)", exc)
            return None
        logger.info("Bound primary search engine from %s", source)
        return TierBinding(tier=self.tier, engine=engine, source=source)

    def _load(self) -> tuple[Any, str]:
        if self._engine is not None:
            return self._engine, type(self._engine).__name__
        if self._factory_path is None:
            raise EngineUnavailableError("not_configured", "SEARCH_ENGINE_FACTORY is empty")

        module_name, attribute = self._factory_path
        source = f"{module_name}:{attribute}"
        try:
            module = importlib.import_module(module_name)
            target = getattr(module, attribute)
        except Exception as exc:
            # Engine modules may fail at import time, e.g. a missing native runtime.
            raise EngineUnavailableError("import_failed", f"{source}: {exc}") from exc

        if inspect.isclass(target) or (callable(target) and not _has_capabilities(target)):
            try:
                target = target()
            except Exception as exc:
                raise EngineUnavailableError("factory_failed", f"{source}: {exc}") from exc
        return target, source


class NaiveTokenizerProvider(CapabilityProvider):
    """Terminal rung: local tokenization only, never fails to bind."""

    tier = EngineTier.NAIVE

    def bind(self) -> TierBinding:
        logger.info("Using naive local tokenizer; ranked search is disabled")
        return TierBinding(tier=self.tier, engine=None, source="naive")


def _has_capabilities(candidate: object) -> bool:
    return all(callable(getattr(candidate, name, None)) for name in ENGINE_CAPABILITIES)


def _check_capabilities(engine: object) -> None:
    missing = [name for name in ENGINE_CAPABILITIES if not callable(getattr(engine, name, None))]
    if missing:
        raise EngineUnavailableError("missing_capability", ", ".join(missing))


def resolve_binding(providers: Sequence[CapabilityProvider]) -> TierBinding:
    """Walk providers in rank order and return the first successful binding."""
    for provider in providers:
        binding = provider.bind()
        if binding is not None:
            return binding
    return NaiveTokenizerProvider().bind()


class EngineAdapter:
    """Stable, never-raising facade over the search engine.

    ``tokenize`` falls back to the naive tokenizer on a per-call basis.
    ``search`` and ``phrase_search`` fall back to an empty result list, since
    only the primary engine can rank documents.
    """

    def __init__(
        self,
        providers: Sequence[CapabilityProvider] | None = None,
        *,
        naive_tokenizer: Callable[[str], list[str]] | None = None,
    ) -> None:
        ranked = list(providers) if providers is not None else [PrimaryEngineProvider()]
        if not ranked or ranked[-1].tier is not EngineTier.NAIVE:
            ranked.append(NaiveTokenizerProvider())
        self._naive_tokenize = naive_tokenizer or NaiveTokenizer()
        self._binding = resolve_binding(ranked)

    @classmethod
    def from_engine(cls, engine: object | None) -> EngineAdapter:
        """Build an adapter around an already constructed engine (or none)."""
        if engine is None:
            return cls([NaiveTokenizerProvider()])
        return cls([PrimaryEngineProvider(engine)])

    @classmethod
    def from_factory_path(cls, factory_path: tuple[str, str] | None) -> EngineAdapter:
        """Build an adapter that loads the engine from a dotted factory path."""
        return cls([PrimaryEngineProvider(factory_path=factory_path)])

    @property
    def tier(self) -> EngineTier:
        return self._binding.tier

    def describe(self) -> dict[str, str]:
        """Return a health-friendly summary of the bound tier."""
        return {"tier": self._binding.tier.value, "source": self._binding.source}

    def naive_tokenize(self, text: str) -> list[str]:
        return self._naive_tokenize(text)

    def tokenize(self, text: str) -> list[str]:
        """Tokenize text with the bound tier, degrading to the naive tokenizer."""
        if not isinstance(text, str) or not text:
            logger.debug("Refusing to tokenize non-text input: %r", text)
            return []

        engine = self._binding.engine
        if engine is None:
            return self._naive_tokenize(text)

        try:
            return [str(token) for token in engine.tokenize(text)]
        except Exception as exc:
            self._record_fallback("tokenize", exc)
            return self._naive_tokenize(text)

    def search(self, query: str) -> list[SearchResult]:
        """Keyword search; empty when no primary engine can answer."""
        return self._ranked_lookup("search", query)

    def phrase_search(self, phrase: str) -> list[SearchResult]:
        """Exact phrase search; empty when no primary engine can answer."""
        return self._ranked_lookup("phrase_search", phrase)

    def _ranked_lookup(self, operation: str, text: str) -> list[SearchResult]:
        if not isinstance(text, str) or not text:
            logger.debug("Refusing %s for non-text input: %r", operation, text)
            return []

        engine = self._binding.engine
        if engine is None:
            ENGINE_FALLBACKS.labels(tier=self._binding.tier.value, operation=operation).inc()
            logger.debug("%s unavailable on %s tier; returning no results", operation, self._binding.tier.value)
            return []

        try:
            raw_results = getattr(engine, operation)(text)
            return self._convert_results(raw_results, operation)
        except Exception as exc:
            self._record_fallback(operation, exc)
            return []

    def _convert_results(self, raw_results: Any, operation: str) -> list[SearchResult]:
        if raw_results is None:
            return []

        results: list[SearchResult] = []
        for index, item in enumerate(raw_results):
            if isinstance(item, Mapping):
                results.append({str(key): value for key, value in item.items()})
            else:
                logger.warning("Dropping non-mapping %s result at index %d: %r", operation, index, item)
        return results

    def _record_fallback(self, operation: str, exc: Exception) -> None:
        tier = self._binding.tier.value
        ENGINE_FALLBACKS.labels(tier=tier, operation=operation).inc()
        logger.error(
            "Engine %s failed on %s tier: %s",
            operation,
            tier,
            exc,
            exc_info=True,
            extra={"tier": tier, "operation": operation},
        )
