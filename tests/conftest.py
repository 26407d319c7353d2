"""Shared test fixtures and configuration."""

import os
from pathlib import Path
import sys

import pytest


SRC_ROOT = Path(__file__).resolve().parents[1] / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))


# Complete test environment that overrides every config value a developer might export
TEST_ENV = {
    "HOST": "127.0.0.1",
    "PORT": "13000",
    "LOG_LEVEL": "info",
    "LOG_JSON": "false",
    "ACCESS_LOG": "false",
    "SEARCH_ENGINE_FACTORY": "",
    "SEARCH_DEFAULT_LIMIT": "20",
    "ADVANCED_DEFAULT_LIMIT": "10",
    "SUGGESTION_DEFAULT_LIMIT": "5",
    "SEARCH_SINGLE_FLIGHT": "false",
    "SUGGESTION_BACKEND": "memory",
    "SUPABASE_URL": "",
    "SUPABASE_KEY": "",
    "OTLP_ENDPOINT": "",
    # Proxy settings - ensure they're cleared for tests
    "http_proxy": "",
    "https_proxy": "",
    "all_proxy": "",
    "no_proxy": "",
}


# Set environment variables immediately when conftest.py is loaded
for key, value in TEST_ENV.items():
    os.environ[key] = value

from search_gateway.adapters.engine import EngineAdapter
from search_gateway.adapters.suggestion_store import InMemorySuggestionStore
from search_gateway.config import Settings


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Reset environment variables to test defaults before each test."""
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)


class FakeEngine:
    """Deterministic primary engine that records every call."""

    def __init__(self, documents=None, *, fail_on=()):
        self.documents = documents if documents is not None else []
        self.fail_on = set(fail_on)
        self.calls: list[tuple[str, str]] = []

    def _maybe_fail(self, operation):
        if operation in self.fail_on:
            raise RuntimeError(f"{operation} exploded")

    def tokenize(self, text):
        self.calls.append(("tokenize", text))
        self._maybe_fail("tokenize")
        return [f"tok:{part}" for part in text.split()]

    def search(self, query):
        self.calls.append(("search", query))
        self._maybe_fail("search")
        return [doc for doc in self.documents if any(word in doc["title"].lower() for word in query.lower().split())]

    def phrase_search(self, phrase):
        self.calls.append(("phrase_search", phrase))
        self._maybe_fail("phrase_search")
        return [doc for doc in self.documents if phrase.lower() in doc["title"].lower()]

    def count(self, operation):
        return sum(1 for name, _ in self.calls if name == operation)


SAMPLE_DOCUMENTS = [
    {"id": 1, "title": "Machine learning basics", "category": "ml"},
    {"id": 2, "title": "Deep machine learning", "category": "ml"},
    {"id": 3, "title": "Learning to cook", "category": "food"},
    {"id": 4, "title": "Cats and machine vision", "category": "pets"},
    {"id": 5, "title": "Cats sleeping", "category": "pets"},
]


@pytest.fixture
def fake_engine():
    return FakeEngine([dict(doc) for doc in SAMPLE_DOCUMENTS])


@pytest.fixture
def engine_adapter(fake_engine):
    return EngineAdapter.from_engine(fake_engine)


@pytest.fixture
def memory_store():
    return InMemorySuggestionStore(["machine learning", "Machine vision", "cats"])


@pytest.fixture
def test_settings():
    return Settings()  # type: ignore[call-arg]


@pytest.fixture
def make_engine():
    """Factory for FakeEngine instances with custom documents or failures."""
    return FakeEngine
