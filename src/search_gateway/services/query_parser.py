"""Query parsing service.

Pure functions with no external dependencies. Splits a raw query into quoted
phrases and the residual unquoted text.
"""

import re
from typing import ClassVar

from search_gateway.domain.search import ParsedQuery


class QueryParser:
    """Turn raw query strings into ParsedQuery value objects.

    Quotes do not nest and an unmatched quote is kept as literal text.
    Parsing never fails; malformed quoting degrades to plain text.
    """

    PHRASE_PATTERN: ClassVar[re.Pattern[str]] = re.compile(r'"([^"]+)"')
    EMBEDDED_QUOTES: ClassVar[re.Pattern[str]] = re.compile(r"['\"]")
    WHITESPACE: ClassVar[re.Pattern[str]] = re.compile(r"\s+")

    def parse(self, raw: str) -> ParsedQuery:
        """Parse a raw query string.

        Args:
            raw: The user's query, possibly containing ``"quoted phrases"``

        Returns:
            ParsedQuery with extracted phrases, residual text and the phrase flag
        """
        if not raw:
            return ParsedQuery()

        phrases = [self._normalize_phrase(match.group(1)) for match in self.PHRASE_PATTERN.finditer(raw)]
        phrases = [phrase for phrase in phrases if phrase]
        residual = self.collapse_whitespace(self.PHRASE_PATTERN.sub("", raw))

        return ParsedQuery(
            phrases=phrases,
            residual=residual,
            is_phrase_search=len(phrases) > 0,
            has_quoted_span=self.PHRASE_PATTERN.search(raw) is not None,
        )

    def collapse_whitespace(self, text: str) -> str:
        return self.WHITESPACE.sub(" ", text).strip()

    def _normalize_phrase(self, phrase: str) -> str:
        # Stray quote characters inside a phrase become spaces; the phrase is not split.
        return self.collapse_whitespace(self.EMBEDDED_QUOTES.sub(" ", phrase))
