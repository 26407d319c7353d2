"""Suggestion store implementations.

A store holds previously searched texts. It answers case-insensitive
substring lookups in store-native order, exact existence checks, and inserts.
Every backend failure is raised as SuggestionStoreError.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import logging
from pathlib import Path
import re
import sqlite3
import threading
from typing import TYPE_CHECKING, Any

import anyio
import httpx

from search_gateway.domain.errors import SuggestionStoreError


if TYPE_CHECKING:
    from search_gateway.config import Settings


logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _check_identifier(name: str) -> str:
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return name


class AbstractSuggestionStore(ABC):
    """Abstract store for suggestion texts."""

    name: str = "abstract"

    @abstractmethod
    async def search(self, text: str, limit: int) -> list[str]:
        """Return up to ``limit`` stored texts containing ``text`` (case-insensitive)."""
        raise NotImplementedError

    @abstractmethod
    async def exists(self, text: str) -> bool:
        """Check for a stored row equal to ``text``."""
        raise NotImplementedError

    @abstractmethod
    async def insert(self, text: str) -> bool:
        """Insert ``text``.

        Returns:
            True if a row was written, False if the store already held it
        """
        raise NotImplementedError

    async def ping(self) -> bool:
        """Check that the store is reachable."""
        await self.exists("")
        return True

    async def close(self) -> None:  # noqa: B027 - optional hook
        """Release backend resources."""


class InMemorySuggestionStore(AbstractSuggestionStore):
    """In-memory store for tests and local development."""

    name = "memory"

    def __init__(self, initial: list[str] | None = None) -> None:
        self._rows: list[str] = []
        self._lock = threading.Lock()
        for text in initial or []:
            if text not in self._rows:
                self._rows.append(text)

    async def search(self, text: str, limit: int) -> list[str]:
        needle = text.casefold()
        with self._lock:
            matches = [row for row in self._rows if needle in row.casefold()]
        return matches[:limit]

    async def exists(self, text: str) -> bool:
        with self._lock:
            return text in self._rows

    async def insert(self, text: str) -> bool:
        with self._lock:
            if text in self._rows:
                return False
            self._rows.append(text)
            return True

    async def ping(self) -> bool:
        return True

    @property
    def rows(self) -> list[str]:
        with self._lock:
            return list(self._rows)


class SqliteSuggestionStore(AbstractSuggestionStore):
    """Single-file SQLite store; blocking calls run in a worker thread."""

    name = "sqlite"

    def __init__(
        self,
        db_path: Path | str,
        *,
        table: str = "Suggestions",
        column: str = "Suggestions",
    ) -> None:
        self.db_path = Path(db_path)
        self.table = _check_identifier(table)
        self.column = _check_identifier(column)
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            if self.db_path.parent and not self.db_path.parent.exists():
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.db_path, check_same_thread=False)
            conn.execute(
                f'CREATE TABLE IF NOT EXISTS "{self.table}" '
                f'(id INTEGER PRIMARY KEY AUTOINCREMENT, "{self.column}" TEXT NOT NULL UNIQUE)'
            )
            conn.commit()
            self._conn = conn
            logger.info("Opened suggestion database at %s", self.db_path)
        return self._conn

    async def _run(self, operation: str, func: Any, *args: Any) -> Any:
        def _locked() -> Any:
            with self._lock:
                return func(self._connection(), *args)

        try:
            return await anyio.to_thread.run_sync(_locked)
        except sqlite3.Error as exc:
            logger.error("SQLite suggestion %s failed: %s", operation, exc, exc_info=True)
            raise SuggestionStoreError(operation, str(exc)) from exc

    async def search(self, text: str, limit: int) -> list[str]:
        pattern = "%" + text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_") + "%"
        query = (
            f'SELECT "{self.column}" FROM "{self.table}" '
            f'WHERE "{self.column}" LIKE ? ESCAPE \'\\\' ORDER BY id LIMIT ?'
        )

        def _search(conn: sqlite3.Connection) -> list[str]:
            return [row[0] for row in conn.execute(query, (pattern, limit)).fetchall()]

        return await self._run("search", _search)

    async def exists(self, text: str) -> bool:
        query = f'SELECT 1 FROM "{self.table}" WHERE "{self.column}" = ? LIMIT 1'

        def _exists(conn: sqlite3.Connection) -> bool:
            return conn.execute(query, (text,)).fetchone() is not None

        return await self._run("exists", _exists)

    async def insert(self, text: str) -> bool:
        statement = f'INSERT OR IGNORE INTO "{self.table}" ("{self.column}") VALUES (?)'

        def _insert(conn: sqlite3.Connection) -> bool:
            cursor = conn.execute(statement, (text,))
            conn.commit()
            return cursor.rowcount == 1

        return await self._run("insert", _insert)

    async def ping(self) -> bool:
        await self._run("ping", lambda conn: conn.execute("SELECT 1").fetchone())
        return True

    async def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None


class SupabaseSuggestionStore(AbstractSuggestionStore):
    """Store backed by a Supabase table through its PostgREST API."""

    name = "supabase"

    def __init__(
        self,
        url: str,
        key: str,
        *,
        table: str = "Suggestions",
        column: str = "Suggestions",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.table = table
        self.column = column
        self._endpoint = f"{url.rstrip('/')}/rest/v1/{table}"
        headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Accept": "application/json",
        }
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout), headers=headers)
        if client is not None:
            self._client.headers.update(headers)

    async def _request(self, operation: str, method: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, self._endpoint, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = exc.response.text or str(exc)
            logger.error("Supabase %s returned %s: %s", operation, exc.response.status_code, detail)
            raise SuggestionStoreError(operation, detail) from exc
        except httpx.HTTPError as exc:
            logger.error("Supabase %s failed: %s", operation, exc, exc_info=True)
            raise SuggestionStoreError(operation, str(exc)) from exc
        return response

    def _column_values(self, response: httpx.Response, operation: str) -> list[str]:
        try:
            rows = response.json()
        except ValueError as exc:
            raise SuggestionStoreError(operation, f"Invalid JSON from store: {exc}") from exc
        return [str(row[self.column]) for row in rows if isinstance(row, dict) and self.column in row]

    async def search(self, text: str, limit: int) -> list[str]:
        params = {
            "select": self.column,
            self.column: f"ilike.*{text}*",
            "limit": str(limit),
        }
        response = await self._request("search", "GET", params=params)
        return self._column_values(response, "search")

    async def exists(self, text: str) -> bool:
        params = {"select": self.column, self.column: f"eq.{text}", "limit": "1"}
        response = await self._request("exists", "GET", params=params)
        return bool(self._column_values(response, "exists"))

    async def insert(self, text: str) -> bool:
        await self._request(
            "insert",
            "POST",
            json=[{self.column: text}],
            headers={"Prefer": "return=minimal"},
        )
        return True

    async def ping(self) -> bool:
        await self._request("ping", "GET", params={"select": self.column, "limit": "1"})
        return True

    async def close(self) -> None:
        await self._client.aclose()


def create_suggestion_store(settings: Settings) -> AbstractSuggestionStore:
    """Build the store selected by ``SUGGESTION_BACKEND``."""
    backend = settings.suggestion_backend
    if backend == "supabase":
        store: AbstractSuggestionStore = SupabaseSuggestionStore(
            settings.supabase_url,
            settings.supabase_key,
            table=settings.suggestion_table,
            column=settings.suggestion_column,
            timeout=settings.http_timeout,
        )
    elif backend == "sqlite":
        store = SqliteSuggestionStore(
            settings.suggestion_sqlite_path,
            table=settings.suggestion_table,
            column=settings.suggestion_column,
        )
    else:
        store = InMemorySuggestionStore()

    logger.info("Using %s suggestion store", store.name, extra={"store_backend": store.name})
    return store
