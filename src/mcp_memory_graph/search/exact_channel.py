"""
Exact and fulltext metadata channel.

Exact matching is case-insensitive: a memory matches when its lower-cased
name equals the normalized query, or its metadata JSON contains it.
Fulltext matching goes through the fulltext indexes on Memory(name,
metadata) and Observation(content). A missing index or a rejected fulltext
query only empties the fulltext side.
"""

import logging
import re

from ..errors import ChannelFailure
from ..graph.store import GraphStore
from ..models.search import ExactMatches

logger = logging.getLogger(__name__)

_FULLTEXT_SPECIAL = re.compile(r"([,.<>{}\[\]\"':;!@#$%^&*()\-+=~|/\\?])")
_FULLTEXT_OPERATORS = frozenset({"and", "or", "not"})


def sanitize_fulltext_query(query: str) -> str:
    """Escape fulltext syntax so the query is matched as plain terms.

    Terms are OR-ed together; operator words are dropped.
    """
    terms = []
    for token in query.split():
        if token.lower() in _FULLTEXT_OPERATORS:
            continue
        escaped = _FULLTEXT_SPECIAL.sub(r"\\\1", token)
        if escaped:
            terms.append(escaped)
    return " | ".join(terms)


class ExactChannel:
    def __init__(self, store: GraphStore):
        self.store = store

    async def search(
        self,
        normalized_query: str,
        limit: int,
        memory_types: list[str] | None = None,
    ) -> ExactMatches:
        params: dict = {"query": normalized_query, "limit": limit}
        if memory_types:
            params["memoryTypes"] = list(memory_types)

        exact_ids = await self._exact(params, memory_types)
        fulltext_ids = await self._fulltext(normalized_query, params, memory_types)
        logger.debug(f"Exact channel: {len(exact_ids)} exact, {len(fulltext_ids)} fulltext")
        return ExactMatches(exact_ids=exact_ids, fulltext_ids=fulltext_ids)

    async def _exact(self, params: dict, memory_types: list[str] | None) -> list[str]:
        type_filter = "AND m.memoryType IN $memoryTypes" if memory_types else ""
        query = (
            "MATCH (m:Memory) "
            "WHERE (toLower(m.name) = $query OR toLower(coalesce(m.metadata, '')) CONTAINS $query) "
            f"{type_filter} "
            "RETURN m.id AS id, m.name AS name "
            "ORDER BY name, id "
            "LIMIT $limit"
        )
        try:
            rows = await self.store.run_query(query, params)
        except Exception as e:
            raise ChannelFailure("exact", str(e)) from e
        return [row["id"] for row in rows if row.get("id")]

    async def _fulltext(self, normalized_query: str, params: dict, memory_types: list[str] | None) -> list[str]:
        fulltext_query = sanitize_fulltext_query(normalized_query)
        if not fulltext_query:
            return []
        params = {**params, "fulltext": fulltext_query}

        memory_filter = "WHERE node.memoryType IN $memoryTypes " if memory_types else ""
        observation_filter = "WHERE m.memoryType IN $memoryTypes " if memory_types else ""
        statements = {
            "memory": (
                "CALL db.idx.fulltext.queryNodes('Memory', $fulltext) YIELD node, score "
                f"WITH node, score {memory_filter}"
                "RETURN node.id AS id, score "
                "ORDER BY score DESC, id "
                "LIMIT $limit"
            ),
            "observation": (
                "CALL db.idx.fulltext.queryNodes('Observation', $fulltext) YIELD node, score "
                "MATCH (m:Memory)-[:HAS_OBSERVATION]->(node) "
                f"WITH m, score {observation_filter}"
                "RETURN m.id AS id, max(score) AS score "
                "ORDER BY score DESC, id "
                "LIMIT $limit"
            ),
        }

        ids: dict[str, None] = {}
        for index, statement in statements.items():
            try:
                rows = await self.store.run_query(statement, params)
            except Exception as e:
                logger.warning(f"Fulltext search on {index} index unavailable (non-fatal): {e}")
                continue
            for row in rows:
                if row.get("id"):
                    ids.setdefault(row["id"])
        return list(ids)[: params["limit"]]
