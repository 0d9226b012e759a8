"""
Keyword tag extraction for memories.

Runs at write time only: derives up to six lower-case tags from a memory's
name and observations. Terms from the name outrank terms from observations,
and technical-looking tokens (camelCase, snake_case, dotted, containing
digits) outrank plain words.
"""

from __future__ import annotations

import logging
import re
from collections import Counter

logger = logging.getLogger(__name__)

MAX_TAGS = 6

_STOP_WORDS = frozenset(
    {
        "a", "an", "the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
        "from", "is", "are", "was", "were", "be", "been", "being", "have", "has", "had", "do",
        "does", "did", "will", "would", "could", "should", "may", "might", "can", "shall", "not",
        "no", "this", "that", "these", "those", "it", "its", "my", "your", "our", "their", "what",
        "which", "who", "how", "when", "where", "why", "about", "up", "out", "if", "then", "than",
        "so", "also", "just", "very", "all", "any", "some", "more", "most", "into", "over", "under",
        "there", "here", "they", "them", "we", "you", "he", "she", "his", "her", "i", "me", "use",
        "used", "using", "new", "one", "two", "get", "set", "via", "like", "such", "each", "other",
    }
)  # fmt: skip

_TOKEN_PATTERN = re.compile(r"[A-Za-z][A-Za-z0-9_.\-+#]*[A-Za-z0-9+#]|[A-Za-z]{3,}")
_TECHNICAL_PATTERN = re.compile(r"[a-z][A-Z]|_|\.|\d|\+\+|#")

_NAME_WEIGHT = 1.5
_TECHNICAL_WEIGHT = 2.0


def _is_technical(token: str) -> bool:
    return bool(_TECHNICAL_PATTERN.search(token))


def _candidates(text: str) -> Counter[str]:
    """Score candidate terms in a text by frequency, boosting technical tokens."""
    scores: Counter[str] = Counter()
    for token in _TOKEN_PATTERN.findall(text):
        lowered = token.lower().strip(".-")
        if len(lowered) < 3 or lowered in _STOP_WORDS:
            continue
        if lowered.endswith("ing") and not _is_technical(token) and len(lowered) > 5:
            continue
        scores[lowered] += _TECHNICAL_WEIGHT if _is_technical(token) else 1.0
    return scores


def extract_tags(
    name: str,
    observations: list[str] | None = None,
    existing_tags: list[str] | None = None,
    max_tags: int = MAX_TAGS,
) -> list[str]:
    """
    Derive tags for a memory.

    Args:
        name: Memory name
        observations: Observation contents
        existing_tags: Tags already on the memory; kept first, in order
        max_tags: Upper bound on returned tags

    Returns:
        Deduplicated lower-case tags, at most ``max_tags``
    """
    scores: Counter[str] = Counter()
    for term, score in _candidates(name or "").items():
        scores[term] += score * _NAME_WEIGHT
    for text in observations or []:
        for term, score in _candidates(text).items():
            scores[term] += score

    tags: list[str] = []
    for tag in existing_tags or []:
        normalized = tag.strip().lower()
        if normalized and normalized not in tags:
            tags.append(normalized)

    ranked = sorted(scores.items(), key=lambda item: (-item[1], item[0]))
    for term, _ in ranked:
        if len(tags) >= max_tags:
            break
        # Skip simple plural/singular duplicates of an accepted tag
        if term in tags or term.rstrip("s") in tags or f"{term}s" in tags:
            continue
        tags.append(term)

    logger.debug(f"Extracted tags for {name!r}: {tags[:max_tags]}")
    return tags[:max_tags]
