"""
Query classification.

Every query string maps to exactly one of three intents:

    WILDCARD         "*" or "all" (any case)
    EXACT_SEARCH     non-empty and contains no letters ("2024-01-15", "42")
    SEMANTIC_SEARCH  anything else

Empty or whitespace-only queries are rejected unless ``lenient=True``, in
which case they are treated as a wildcard.
"""

import re
from typing import Any

from ..errors import InvalidQuery
from ..models.search import QueryIntent, QueryType

_WILDCARD_TOKENS = frozenset({"*", "all"})
_HAS_LETTER = re.compile(r"[^\W\d_]")


def classify(query: Any, lenient: bool = False) -> QueryIntent:
    if not isinstance(query, str):
        raise InvalidQuery(f"Query must be a string, got {type(query).__name__}")

    normalized = query.strip().lower()

    if not normalized:
        if lenient:
            return QueryIntent(QueryType.WILDCARD, normalized, 1.0)
        raise InvalidQuery("Query must not be empty")

    if normalized in _WILDCARD_TOKENS:
        return QueryIntent(QueryType.WILDCARD, normalized, 1.0)

    if not _HAS_LETTER.search(normalized):
        return QueryIntent(QueryType.EXACT_SEARCH, normalized, 0.9)

    return QueryIntent(QueryType.SEMANTIC_SEARCH, normalized, 0.8)
