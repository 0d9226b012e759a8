"""Materialization of full memory records by id."""

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from .store import GraphStore

if TYPE_CHECKING:
    from ..search.filters import DateFilter

FETCH_MEMORIES_QUERY = """
MATCH (m:Memory)
WHERE m.id IN $ids {filters}
WITH m, m.lastAccessed AS previousAccess
SET m.lastAccessed = $now
WITH m, previousAccess
OPTIONAL MATCH (m)-[:HAS_OBSERVATION]->(o:Observation)
WITH m, previousAccess, o ORDER BY o.createdAt, o.id
WITH m, previousAccess, collect(CASE WHEN o IS NULL THEN NULL ELSE {{
    id: o.id, content: o.content, createdAt: o.createdAt, source: o.source, confidence: o.confidence
}} END) AS observations
OPTIONAL MATCH (m)-[:HAS_TAG]->(t:Tag)
RETURN m.id AS id, m.name AS name, m.memoryType AS memoryType, m.metadata AS metadata,
       m.createdAt AS createdAt, m.modifiedAt AS modifiedAt, m.lastAccessed AS lastAccessed,
       previousAccess, observations, collect(DISTINCT t.name) AS tags
"""


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


async def fetch_memories(
    store: GraphStore,
    ids: list[str],
    memory_types: list[str] | None = None,
    date_filter: "DateFilter | None" = None,
) -> list[dict[str, Any]]:
    """
    Load memories with observations (oldest first) and tags in one round trip.

    Every returned memory has its lastAccessed set to now; ``previousAccess``
    carries the value it had before. Ids that no longer exist, or that the
    type or date filters exclude, are simply absent. Date bounds are checked
    before the access time is updated.
    """
    if not ids:
        return []
    filters = "AND m.memoryType IN $memoryTypes" if memory_types else ""
    params: dict[str, Any] = {"ids": list(ids), "now": utc_now_iso()}
    if memory_types:
        params["memoryTypes"] = list(memory_types)
    if date_filter is not None:
        filters += date_filter.clause("m")
        params.update(date_filter.params())
    return await store.run_query(FETCH_MEMORIES_QUERY.format(filters=filters), params)
