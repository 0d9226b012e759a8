"""MCP tool input models.

Each MCP tool function validates its inputs by constructing the
corresponding model; range checks, action/field cross-validation and
list normalisation all live here as declarative constraints.
"""

from __future__ import annotations

from typing import Any, Literal, Self

from pydantic import BaseModel, Field, model_validator

from .memory import ContextLevel
from .validators import IdList, MemoryId, MemoryTypes, RelationTypeName, Tags, UnitFloat


class StoreMemoryParams(BaseModel):
    """Validated input for the ``memory_store`` MCP tool."""

    name: str = Field(min_length=1, max_length=500)
    memory_type: str = Field(min_length=1, max_length=64)
    observations: list[str] = []
    metadata: dict[str, Any] | None = None
    tags: Tags = []

    @model_validator(mode="after")
    def drop_blank_observations(self) -> Self:
        self.observations = [o for o in self.observations if o and o.strip()]
        return self


class BatchMemoryParams(StoreMemoryParams):
    """One memory in a ``memory_store_batch`` call."""

    local_id: str | None = Field(default=None, min_length=1, max_length=64)


class BatchRelationParams(BaseModel):
    """One relation in a ``memory_store_batch`` call; endpoints may be local ids."""

    from_id: MemoryId
    to_id: MemoryId
    relation_type: RelationTypeName
    strength: UnitFloat | None = None
    context: Tags = []
    source: str | None = None


class StoreBatchParams(BaseModel):
    """Validated input for the ``memory_store_batch`` MCP tool."""

    memories: list[BatchMemoryParams] = Field(min_length=1)
    relations: list[BatchRelationParams] = []


class FindParams(BaseModel):
    """Validated input for the ``memory_find`` MCP tool."""

    query: str | list[str]
    limit: int = Field(default=10, ge=1, le=200)
    include_graph_context: bool = True
    memory_types: MemoryTypes = []
    threshold: UnitFloat = 0.1
    context_level: ContextLevel = "full"
    order_by: Literal["relevance", "created", "modified", "accessed"] = "relevance"

    created_after: str | None = None
    created_before: str | None = None
    modified_since: str | None = None
    accessed_since: str | None = None

    traverse_from: MemoryId | None = None
    traverse_relations: Tags | None = None
    max_depth: int | None = Field(default=None, ge=1)
    traverse_direction: Literal["outbound", "inbound", "both"] | None = None

    @model_validator(mode="after")
    def clean_id_list(self) -> Self:
        if isinstance(self.query, list):
            self.query = [q.strip() for q in self.query if q and q.strip()]
            if not self.query:
                raise ValueError("query must name at least one memory id")
        return self


class UpdateMemoryParams(BaseModel):
    """Validated input for the ``memory_update`` MCP tool."""

    memory_id: MemoryId
    name: str | None = Field(default=None, min_length=1, max_length=500)
    memory_type: str | None = Field(default=None, min_length=1, max_length=64)
    metadata: dict[str, Any] | None = None
    tags: Tags | None = None

    @model_validator(mode="after")
    def require_a_change(self) -> Self:
        if self.name is None and self.memory_type is None and self.metadata is None and self.tags is None:
            raise ValueError("at least one of name, memory_type, metadata or tags is required")
        return self


class MemoryIdParams(BaseModel):
    """Validated input for tools that take a single memory id."""

    memory_id: MemoryId


class ObservationParams(BaseModel):
    """Validated input for the ``observation`` MCP tool."""

    action: Literal["add", "delete"]
    memory_id: MemoryId
    contents: list[str] = []
    observation_ids: IdList = []
    source: str | None = None
    confidence: UnitFloat | None = None

    @model_validator(mode="after")
    def validate_action_fields(self) -> Self:
        if self.action == "add":
            self.contents = [c for c in self.contents if c and c.strip()]
            if not self.contents:
                raise ValueError("contents required for 'add'")
        elif not self.observation_ids:
            raise ValueError("observation_ids required for 'delete'")
        return self


class RelationParams(BaseModel):
    """Validated input for the ``relation`` MCP tool."""

    action: Literal["create", "get", "delete"]
    memory_id: MemoryId
    target_id: MemoryId | None = None
    relation_type: RelationTypeName | None = None
    strength: UnitFloat | None = None
    context: Tags = []
    source: str | None = None

    @model_validator(mode="after")
    def validate_action_fields(self) -> Self:
        """Require target_id and relation_type for create/delete."""
        if self.action in {"create", "delete"}:
            if not self.target_id or not self.relation_type:
                raise ValueError(f"target_id and relation_type required for '{self.action}'")
        return self
