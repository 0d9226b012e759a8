"""
Wildcard responder: a structural overview of the graph for "*" queries.

Roots are memories nothing RELATES_TO. Each returned memory lists its
direct children. When there are fewer roots than the target total, the
children and then the grandchildren are added as entries of their own,
breadth-first, until the target is reached. Observations are not loaded.
"""

import logging
from typing import Any

from ..config import settings
from ..graph.store import GraphStore
from ..models.memory import MemoryRecord, MemorySummary
from .filters import DateFilter

logger = logging.getLogger(__name__)

_NODE_FIELDS = (
    "{v}.id AS id, {v}.name AS name, {v}.memoryType AS memoryType, {v}.metadata AS metadata, "
    "{v}.createdAt AS createdAt, {v}.modifiedAt AS modifiedAt, {v}.lastAccessed AS lastAccessed"
)

_ROOTS_QUERY = (
    "MATCH (m:Memory) "
    "WHERE NOT ()-[:RELATES_TO]->(m) {type_filter} "
    f"RETURN {_NODE_FIELDS.format(v='m')} "
    "ORDER BY name, id "
    "LIMIT $limit"
)

# Used when every memory has an incoming relation (the graph is all cycles).
_ALL_QUERY = (
    "MATCH (m:Memory) "
    "WHERE m.id IS NOT NULL {type_filter} "
    f"RETURN {_NODE_FIELDS.format(v='m')} "
    "ORDER BY name, id "
    "LIMIT $limit"
)

_CHILDREN_QUERY = (
    "UNWIND $ids AS parentId "
    "MATCH (p:Memory {{id: parentId}})-[:RELATES_TO]->(c:Memory) "
    "WHERE c.id <> parentId {type_filter} "
    f"RETURN DISTINCT parentId, {_NODE_FIELDS.format(v='c')} "
    "ORDER BY parentId, name, id"
)


class WildcardResponder:
    def __init__(self, store: GraphStore, target_total: int | None = None):
        self.store = store
        self.target_total = target_total or settings.search.wildcard_target_total

    async def _children(
        self, parent_ids: list[str], memory_types: list[str] | None, date_filter: DateFilter | None
    ) -> dict[str, list[dict]]:
        if not parent_ids:
            return {}
        params: dict[str, Any] = {"ids": parent_ids}
        type_filter = ""
        if memory_types:
            params["memoryTypes"] = list(memory_types)
            type_filter = "AND c.memoryType IN $memoryTypes"
        if date_filter is not None:
            type_filter += date_filter.clause("c")
            params.update(date_filter.params())
        rows = await self.store.run_query(_CHILDREN_QUERY.format(type_filter=type_filter), params)
        grouped: dict[str, list[dict]] = {}
        for row in rows:
            if row.get("id"):
                grouped.setdefault(row["parentId"], []).append(row)
        return grouped

    @staticmethod
    def _record(row: dict, children: list[dict]) -> MemoryRecord:
        record = MemoryRecord.from_row(row)
        record.children = [
            MemorySummary(id=c["id"], name=c.get("name") or "", memory_type=c.get("memoryType") or "")
            for c in children
        ]
        return record

    async def summarize(
        self,
        limit: int | None = None,
        memory_types: list[str] | None = None,
        date_filter: DateFilter | None = None,
    ) -> list[MemoryRecord]:
        target = limit or self.target_total
        params: dict[str, Any] = {"limit": target}
        type_filter = ""
        if memory_types:
            params["memoryTypes"] = list(memory_types)
            type_filter = "AND m.memoryType IN $memoryTypes"
        if date_filter is not None:
            type_filter += date_filter.clause("m")
            params.update(date_filter.params())

        roots = await self.store.run_query(_ROOTS_QUERY.format(type_filter=type_filter), params)
        roots = [row for row in roots if row.get("id")]
        if not roots:
            logger.debug("No root memories; listing memories by name")
            roots = await self.store.run_query(_ALL_QUERY.format(type_filter=type_filter), params)
            roots = [row for row in roots if row.get("id")]

        level = roots
        children = await self._children([row["id"] for row in level], memory_types, date_filter)
        results = [self._record(row, children.get(row["id"], [])) for row in level]
        seen = {row["id"] for row in level}

        # Expand at most two levels below the roots
        for _ in range(2):
            if len(results) >= target:
                break
            next_level: list[dict] = []
            for row in level:
                for child in children.get(row["id"], []):
                    if child["id"] not in seen and len(results) + len(next_level) < target:
                        seen.add(child["id"])
                        next_level.append(child)
            if not next_level:
                break
            children = await self._children([row["id"] for row in next_level], memory_types, date_filter)
            results.extend(self._record(row, children.get(row["id"], [])) for row in next_level)
            level = next_level

        logger.debug(f"Wildcard summary: {len(roots)} roots, {len(results)} entries")
        return results[:target]
