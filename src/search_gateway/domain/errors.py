"""Error taxonomy for the query-serving layer."""


class SearchGatewayError(Exception):
    """Base class for errors raised by search-gateway components."""


class InvalidQueryError(SearchGatewayError, ValueError):
    """A required query field is missing or blank."""

    def __init__(self, message: str = "Search query is required") -> None:
        super().__init__(message)
        self.message = message


class EngineUnavailableError(SearchGatewayError, RuntimeError):
    """The primary engine could not be bound.

    Only raised while resolving engine tiers; the adapter absorbs it and
    degrades to the naive tier.
    """

    def __init__(self, reason: str, detail: str | None = None) -> None:
        message = f"{reason}: {detail}" if detail else reason
        super().__init__(message)
        self.reason = reason
        self.detail = detail


class SuggestionStoreError(SearchGatewayError, RuntimeError):
    """The suggestion store failed; surfaced to clients as a 500."""

    def __init__(self, operation: str, detail: str) -> None:
        super().__init__(detail)
        self.operation = operation
        self.detail = detail
