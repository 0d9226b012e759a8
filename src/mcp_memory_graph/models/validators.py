"""Shared Pydantic types and validators for reuse across models.

Centralises tag and id-list normalisation and range-clamped numbers so
every tool input model speaks the same language.
"""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import BeforeValidator, Field

# ---------------------------------------------------------------------------
# List normalisation
# ---------------------------------------------------------------------------


def normalize_str_list(v: Any) -> list[str]:
    """Accept ``str | list | None`` and return a clean ``list[str]``.

    * ``"a, b, c"`` → ``["a", "b", "c"]``
    * ``["a", None, " b "]`` → ``["a", "b"]``
    * ``None`` → ``[]``
    """
    if v is None:
        return []
    if isinstance(v, str):
        return [t.strip() for t in v.split(",") if t.strip()]
    if isinstance(v, list):
        return [s for item in v if item is not None and (s := str(item).strip())]
    return []


Tags = Annotated[list[str], BeforeValidator(normalize_str_list)]
"""Flexible tag input: accepts str, list, or None and always outputs list[str]."""

MemoryTypes = Annotated[list[str], BeforeValidator(normalize_str_list)]
"""Memory type filter: accepts "project,task" or ["project", "task"]."""

IdList = Annotated[list[str], BeforeValidator(normalize_str_list)]


# ---------------------------------------------------------------------------
# Numeric types
# ---------------------------------------------------------------------------

UnitFloat = Annotated[float, Field(ge=0.0, le=1.0)]
"""Float within [0.0, 1.0], for scores, thresholds, strengths."""


# ---------------------------------------------------------------------------
# String constraints
# ---------------------------------------------------------------------------

MemoryId = Annotated[str, Field(min_length=1)]
"""Non-empty memory identifier."""

RelationTypeName = Annotated[str, Field(min_length=1, max_length=64, pattern=r"^[A-Za-z][A-Za-z0-9_]*$")]
"""Relation type label, e.g. ``depends_on`` or ``INFLUENCES``."""
