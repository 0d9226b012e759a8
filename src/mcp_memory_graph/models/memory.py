"""Memory, observation and relation models.

Rows coming back from the graph use the stored camelCase property names;
the ``from_row`` constructors translate them and normalize numbers through
the storage value adapters.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from ..graph.values import parse_metadata, to_plain_float, to_plain_int


class Observation(BaseModel):
    """A piece of content attached to a memory."""

    id: str
    content: str = Field(min_length=1)
    created_at: str | None = None
    source: str | None = None
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Observation:
        return cls(
            id=row["id"],
            content=row["content"],
            created_at=row.get("createdAt"),
            source=row.get("source"),
            confidence=to_plain_float(row.get("confidence")),
        )


class MemorySummary(BaseModel):
    """Lightweight view of a memory used for wildcard children."""

    id: str
    name: str
    memory_type: str


class MemoryRecord(BaseModel):
    """A typed memory node with its observations and tags.

    The name embedding is storage-only and never part of this model.
    """

    id: str = Field(frozen=True)
    name: str
    memory_type: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: str | None = None
    modified_at: str | None = None
    last_accessed: str | None = None
    tags: list[str] = Field(default_factory=list)
    observations: list[Observation] = Field(default_factory=list)
    children: list[MemorySummary] = Field(default_factory=list)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> MemoryRecord:
        observations = [Observation.from_row(o) for o in row.get("observations") or [] if o and o.get("id")]
        return cls(
            id=row["id"],
            name=row.get("name") or "",
            memory_type=row.get("memoryType") or "",
            metadata=parse_metadata(row.get("metadata")),
            created_at=row.get("createdAt"),
            modified_at=row.get("modifiedAt"),
            last_accessed=row.get("lastAccessed"),
            tags=sorted(t for t in row.get("tags") or [] if t),
            observations=observations,
        )


class Relation(BaseModel):
    """A directed, typed edge between two memories."""

    from_id: str
    to_id: str
    relation_type: str = Field(min_length=1)
    strength: float | None = Field(default=None, ge=0.0, le=1.0)
    context: list[str] = Field(default_factory=list)
    source: str | None = None
    created_at: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Relation:
        return cls(
            from_id=row["fromId"],
            to_id=row["toId"],
            relation_type=row["relationType"],
            strength=to_plain_float(row.get("strength")),
            context=list(row.get("context") or []),
            source=row.get("source"),
            created_at=row.get("createdAt"),
        )


class RelatedMemory(BaseModel):
    """A neighbour of a search result, reached within the graph depth limit."""

    id: str
    name: str
    type: str
    relation_type: str
    hop_distance: int
    strength: float | None = None
    source: str | None = None
    created_at: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> RelatedMemory:
        return cls(
            id=row["id"],
            name=row.get("name") or "",
            type=row.get("type") or "",
            relation_type=row.get("relationType") or "",
            hop_distance=to_plain_int(row.get("distance"), default=1),
            strength=to_plain_float(row.get("strength")),
            source=row.get("source"),
            created_at=row.get("createdAt"),
        )


class GraphContext(BaseModel):
    ancestors: list[RelatedMemory] = Field(default_factory=list)
    descendants: list[RelatedMemory] = Field(default_factory=list)


ContextLevel = Literal["minimal", "full", "relations-only"]
CONTEXT_LEVELS: tuple[str, ...] = ("minimal", "full", "relations-only")

_SUMMARY_FIELDS = frozenset({"id", "name", "memory_type", "score"})


class FoundMemory(MemoryRecord):
    """A memory returned by memory_find, with optional graph context."""

    model_config = ConfigDict(validate_assignment=True)

    related: GraphContext | None = None

    def to_response(self, context_level: ContextLevel = "full") -> dict[str, Any]:
        """
        Shape the memory for the wire.

        ``minimal`` keeps id, name, memory_type and score; ``relations-only``
        adds related. ``full`` keeps everything, listing children only when
        there are any.
        """
        data = self.model_dump(exclude_none=True)
        if context_level == "minimal":
            return {key: value for key, value in data.items() if key in _SUMMARY_FIELDS}
        if context_level == "relations-only":
            return {key: value for key, value in data.items() if key in _SUMMARY_FIELDS or key == "related"}
        if not self.children:
            data.pop("children", None)
        return data


class RankedResult(FoundMemory):
    """A memory returned by search, with its composite score."""

    score: float = Field(ge=0.0, le=1.0)
    match_type: Literal["exact", "semantic"]
