"""Search pipeline types: query intent, vector capability, candidates and weights."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class QueryType(str, enum.Enum):
    WILDCARD = "wildcard"
    EXACT_SEARCH = "exact_search"
    SEMANTIC_SEARCH = "semantic_search"


@dataclass(frozen=True)
class QueryIntent:
    """Classification of a raw query string.

    ``confidence`` is informational only; no code path branches on it.
    """

    type: QueryType
    normalized_query: str
    confidence: float


class VectorCapability(str, enum.Enum):
    """Which vector-similarity facility the graph backend offers.

    FULL:        native vector functions (vec.cosineDistance over vecf32)
    APPROXIMATE: a generic similarity library function (gds.similarity.cosine)
    NONE:        neither; similarity is computed in-process
    """

    FULL = "full"
    APPROXIMATE = "approximate"
    NONE = "none"


@dataclass(frozen=True)
class ScoreWeights:
    vector: float = 0.5
    metadata_exact: float = 0.25
    metadata_fulltext: float = 0.15
    tags: float = 0.10

    @classmethod
    def from_settings(cls, search_settings: Any) -> ScoreWeights:
        return cls(
            vector=search_settings.weight_vector,
            metadata_exact=search_settings.weight_metadata_exact,
            metadata_fulltext=search_settings.weight_metadata_fulltext,
            tags=search_settings.weight_tags,
        )


@dataclass(frozen=True)
class VectorHit:
    memory_id: str
    similarity: float


@dataclass(frozen=True)
class TagHit:
    memory_id: str
    score: float


@dataclass
class ExactMatches:
    exact_ids: list[str] = field(default_factory=list)
    fulltext_ids: list[str] = field(default_factory=list)


@dataclass
class TagMatches:
    hits: list[TagHit] = field(default_factory=list)
    semantic: bool = False


@dataclass
class ChannelOutputs:
    """Everything the channels contributed for one search."""

    vector: list[VectorHit] = field(default_factory=list)
    exact: ExactMatches = field(default_factory=ExactMatches)
    tags: TagMatches = field(default_factory=TagMatches)

    def candidate_ids(self) -> list[str]:
        seen: dict[str, None] = {}
        for hit in self.vector:
            seen.setdefault(hit.memory_id)
        for memory_id in self.exact.exact_ids:
            seen.setdefault(memory_id)
        for memory_id in self.exact.fulltext_ids:
            seen.setdefault(memory_id)
        for hit in self.tags.hits:
            seen.setdefault(hit.memory_id)
        return list(seen)


@dataclass
class SearchCandidate:
    """Per-memory accumulation of channel signals. Never persisted."""

    memory_id: str
    vector: bool = False
    vector_similarity: float = 0.0
    exact: bool = False
    fulltext: bool = False
    tag: bool = False
    tag_semantic: bool = False
    score: float = 0.0

    @property
    def match_type(self) -> str:
        if self.exact or self.fulltext or (self.tag and not self.tag_semantic):
            return "exact"
        return "semantic"


@dataclass
class ChannelOutcome(Generic[T]):
    """Result-or-error of one channel task."""

    name: str
    value: T | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None
