"""
Graph traversal from a starting memory.

Outbound walks RELATES_TO edges away from the start (what it leads to),
inbound walks them backwards (what leads to it), and "both" is the union of
the two, each memory kept at its nearest distance. Every hit records the
relation adjacent to the starting memory on its path.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Literal

from ..config import settings
from ..errors import InvalidArgument, PipelineFailure
from ..graph.store import GraphStore
from ..graph.values import to_plain_int
from ..models.memory import RelatedMemory

logger = logging.getLogger(__name__)

Direction = Literal["outbound", "inbound", "both"]

_PATTERNS = {
    "outbound": ("(start:Memory)-[:RELATES_TO*1..{depth}]->(other:Memory)", "head"),
    "inbound": ("(other:Memory)-[:RELATES_TO*1..{depth}]->(start:Memory)", "last"),
}

_TRAVERSAL_QUERY = """
MATCH path = {pattern}
WHERE start.id = $startId AND other.id IS NOT NULL AND other.id <> $startId {relation_filter}
WITH start, other, length(path) AS distance, {edge}(relationships(path)) AS rel
RETURN other.id AS id, other.name AS name, distance,
       start.name AS startName, start.memoryType AS startType,
       rel.relationType AS relationType, rel.strength AS strength, rel.source AS source,
       rel.createdAt AS createdAt
ORDER BY distance, name, id
"""


@dataclass
class TraversalHit:
    """A memory reached from the start, and the start as seen from it."""

    memory_id: str
    direction: Literal["outbound", "inbound"]
    anchor: RelatedMemory


class GraphTraversal:
    def __init__(self, store: GraphStore):
        self.store = store

    async def _walk(
        self, start_id: str, direction: str, relation_types: list[str] | None, depth: int
    ) -> list[dict[str, Any]]:
        pattern, edge = _PATTERNS[direction]
        relation_filter = ""
        params: dict[str, Any] = {"startId": start_id}
        if relation_types:
            relation_filter = "AND all(r IN relationships(path) WHERE r.relationType IN $relationTypes)"
            params["relationTypes"] = list(relation_types)
        query = _TRAVERSAL_QUERY.format(pattern=pattern.format(depth=depth), relation_filter=relation_filter, edge=edge)
        try:
            rows = await self.store.run_query(query, params)
        except Exception as e:
            raise PipelineFailure(f"Traversal ({direction}) from {start_id} failed: {e}") from e
        return [dict(row, direction=direction) for row in rows]

    async def traverse(
        self,
        start_id: str,
        direction: Direction = "both",
        relation_types: list[str] | None = None,
        max_depth: int | None = None,
    ) -> list[TraversalHit]:
        """
        Walk the graph from ``start_id``.

        Args:
            start_id: Memory to start from
            direction: "outbound", "inbound" or "both"
            relation_types: Only follow these relation types (every hop must match)
            max_depth: Hops to walk, 1 to ``max_traversal_depth``

        Returns:
            Hits ordered by distance, then name and id; the start itself is never included

        Raises:
            InvalidArgument: Bad direction, depth or empty relation type list
            PipelineFailure: The traversal query failed
        """
        if not start_id:
            raise InvalidArgument("traverse_from is required for graph traversal")
        if direction not in ("outbound", "inbound", "both"):
            raise InvalidArgument(f"Invalid traversal direction {direction!r}: use outbound, inbound or both")
        depth = max_depth if max_depth is not None else settings.limits.default_traversal_depth
        deepest = settings.limits.max_traversal_depth
        if isinstance(depth, bool) or not isinstance(depth, int) or not 1 <= depth <= deepest:
            raise InvalidArgument(f"max_depth must be between 1 and {deepest}, got {depth!r}")
        if relation_types is not None and not relation_types:
            raise InvalidArgument("traverse_relations cannot be empty when given")

        directions = ["outbound", "inbound"] if direction == "both" else [direction]
        outcomes = await asyncio.gather(
            *(self._walk(start_id, d, relation_types, depth) for d in directions),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome

        rows = [row for batch in outcomes for row in batch]
        rows.sort(
            key=lambda r: (to_plain_int(r.get("distance"), default=1), r.get("name") or "", r.get("id") or "")
        )

        hits: list[TraversalHit] = []
        seen: set[str] = set()
        for row in rows:
            memory_id = row.get("id")
            if not memory_id or memory_id in seen:
                continue
            seen.add(memory_id)
            anchor = RelatedMemory.from_row(
                {**row, "id": start_id, "name": row.get("startName"), "type": row.get("startType")}
            )
            hits.append(TraversalHit(memory_id=memory_id, direction=row["direction"], anchor=anchor))

        logger.debug(f"Traversal from {start_id} ({direction}, depth {depth}): {len(hits)} memories")
        return hits
