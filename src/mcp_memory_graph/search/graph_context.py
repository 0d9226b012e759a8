"""
Graph context enrichment.

For each result, collect up to ``max_related_items`` ancestors (memories
with a RELATES_TO path into it) and descendants (memories it reaches),
within ``max_graph_depth`` hops. Closer memories come first; ties break by
name then id. Each related memory carries the type, strength and
provenance of the first relation on its path.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any

from ..config import settings
from ..errors import EnrichmentFailure
from ..graph.store import GraphStore
from ..models.memory import GraphContext, RelatedMemory

logger = logging.getLogger(__name__)

_PATTERNS = {
    "ancestors": "(other:Memory)-[:RELATES_TO*1..{depth}]->(m:Memory)",
    "descendants": "(m:Memory)-[:RELATES_TO*1..{depth}]->(other:Memory)",
}

_CONTEXT_QUERY = """
UNWIND $ids AS targetId
MATCH path = {pattern}
WHERE m.id = targetId AND other.id IS NOT NULL AND other.id <> targetId
WITH targetId, other, length(path) AS distance, relationships(path)[0] AS rel
RETURN targetId, other.id AS id, other.name AS name, other.memoryType AS type, distance,
       rel.relationType AS relationType, rel.strength AS strength, rel.source AS source,
       rel.createdAt AS createdAt
ORDER BY targetId, distance, name, id
"""


def group_related(rows: list[dict[str, Any]], max_items: int) -> dict[str, list[RelatedMemory]]:
    """Group rows by target, keeping the nearest occurrence of each memory."""
    grouped: dict[str, list[RelatedMemory]] = defaultdict(list)
    seen: dict[str, set[str]] = defaultdict(set)
    for row in rows:
        target = row.get("targetId")
        related_id = row.get("id")
        if not target or not related_id or related_id == target:
            continue
        if related_id in seen[target] or len(grouped[target]) >= max_items:
            continue
        seen[target].add(related_id)
        grouped[target].append(RelatedMemory.from_row(row))
    return grouped


class GraphContextEnricher:
    def __init__(self, store: GraphStore, max_depth: int | None = None, max_items: int | None = None):
        self.store = store
        self.max_depth = max_depth or settings.search.max_graph_depth
        self.max_items = max_items if max_items is not None else settings.search.max_related_items

    async def _direction(self, direction: str, ids: list[str]) -> dict[str, list[RelatedMemory]]:
        pattern = _PATTERNS[direction].format(depth=int(self.max_depth))
        try:
            rows = await self.store.run_query(_CONTEXT_QUERY.format(pattern=pattern), {"ids": ids})
        except Exception as e:
            raise EnrichmentFailure(f"Loading {direction} failed: {e}") from e
        return group_related(rows, self.max_items)

    async def enrich(self, ids: list[str]) -> dict[str, GraphContext]:
        """Load graph context for every id in one round trip per direction."""
        if not ids:
            return {}
        outcomes = await asyncio.gather(
            self._direction("ancestors", ids),
            self._direction("descendants", ids),
            return_exceptions=True,
        )
        # Both directions have settled; surface the first failure
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        ancestors, descendants = outcomes
        return {
            memory_id: GraphContext(
                ancestors=ancestors.get(memory_id, []),
                descendants=descendants.get(memory_id, []),
            )
            for memory_id in ids
        }
