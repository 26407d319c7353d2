"""Centralized configuration for search-gateway using Pydantic Settings."""

from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Strictly typed configuration loaded from environment variables.

    All environment variables are validated at startup with proper types.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",  # Ignore extra env vars not defined in model
    )

    # Server settings
    host: str = Field(default="127.0.0.1", description="HTTP bind host")
    port: int = Field(default=3000, ge=1, le=65535, description="HTTP bind port")
    uvicorn_limit_concurrency: int = Field(default=100, ge=1, description="Uvicorn concurrency limit")

    # Logging
    log_level: str = Field(default="info", description="Logging level")
    log_json: bool = Field(default=True, description="Emit structured JSON logs")
    access_log: bool = Field(default=False, description="Keep uvicorn access logs at INFO")

    # Engine binding
    search_engine_factory: str = Field(
        default="",
        description="Dotted 'module:attribute' path to a callable returning the primary search engine",
    )

    # Query serving
    search_default_limit: int = Field(default=20, ge=1, description="Default page size for GET /api/search")
    advanced_default_limit: int = Field(default=10, ge=1, description="Default page size for advanced search")
    suggestion_default_limit: int = Field(default=5, ge=1, description="Default number of suggestions returned")
    search_single_flight: bool = Field(
        default=False,
        description="Collapse concurrent cache misses for the same key onto one engine call",
    )

    # Suggestion store
    suggestion_backend: Literal["memory", "sqlite", "supabase"] = Field(
        default="memory", description="Backend used for search suggestions"
    )
    suggestion_sqlite_path: str = Field(default="suggestions.db", description="SQLite file for suggestions")
    supabase_url: str = Field(default="", description="Supabase project URL")
    supabase_key: str = Field(default="", description="Supabase service or anon key")
    suggestion_table: str = Field(default="Suggestions", description="Table holding suggestion rows")
    suggestion_column: str = Field(default="Suggestions", description="Column holding suggestion text")
    http_timeout: float = Field(default=10.0, gt=0, description="Timeout in seconds for store HTTP calls")

    # Tracing
    otlp_endpoint: str = Field(default="", description="OTLP/HTTP trace collector endpoint (disabled when empty)")
    service_name: str = Field(default="search-gateway", description="Service name reported to telemetry")

    @field_validator("search_engine_factory")
    @classmethod
    def _check_engine_factory(cls, value: str) -> str:
        path = value.strip()
        if path and not all(_split_factory_path(path)):
            raise ValueError(
                f"SEARCH_ENGINE_FACTORY must look like 'module:attribute' or 'module.attribute', got {value!r}"
            )
        return value

    @model_validator(mode="after")
    def _check_supabase_credentials(self) -> "Settings":
        if self.suggestion_backend == "supabase" and (not self.supabase_url or not self.supabase_key):
            raise ValueError(
                "SUPABASE_URL and SUPABASE_KEY must be set when SUGGESTION_BACKEND=supabase. "
                "Use SUGGESTION_BACKEND=sqlite or memory for a local suggestion store."
            )
        return self

    def is_debug(self) -> bool:
        """Check if the server runs with debug logging."""
        return self.log_level.lower() == "debug"

    def get_engine_factory_path(self) -> tuple[str, str] | None:
        """Split SEARCH_ENGINE_FACTORY into (module, attribute).

        Returns:
            Tuple of module path and attribute name, None when unset
        """
        path = self.search_engine_factory.strip()
        if not path:
            return None
        return _split_factory_path(path)


def _split_factory_path(path: str) -> tuple[str, str]:
    module_name, _, attribute = path.partition(":")
    if not attribute:
        module_name, _, attribute = path.rpartition(".")
    return module_name, attribute
