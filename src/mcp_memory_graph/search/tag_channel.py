"""
Tag channel.

Without vector support, tags are matched by substring: each query word
longer than two characters is looked for inside tag names. With vector
support, the query embedding is compared against tag embeddings and a
memory qualifies when its best tag clears the tag similarity threshold.
"""

import logging

from ..config import settings
from ..embeddings import EmbeddingProvider
from ..errors import ChannelFailure
from ..graph.store import GraphStore
from ..models.search import TagHit, TagMatches, VectorCapability
from .vector_channel import similarity_expression

logger = logging.getLogger(__name__)

MIN_WORD_LENGTH = 3


def query_words(normalized_query: str) -> list[str]:
    words: list[str] = []
    for word in normalized_query.lower().split():
        if len(word) >= MIN_WORD_LENGTH and word not in words:
            words.append(word)
    return words


class TagChannel:
    def __init__(self, store: GraphStore, embedder: EmbeddingProvider, similarity_threshold: float | None = None):
        self.store = store
        self.embedder = embedder
        self.similarity_threshold = (
            similarity_threshold if similarity_threshold is not None else settings.search.tag_similarity_threshold
        )

    async def search(
        self,
        normalized_query: str,
        limit: int,
        memory_types: list[str] | None,
        capability: VectorCapability,
    ) -> TagMatches:
        params: dict = {"limit": limit}
        if memory_types:
            params["memoryTypes"] = list(memory_types)
        type_filter = "AND m.memoryType IN $memoryTypes" if memory_types else ""

        match capability:
            case VectorCapability.NONE:
                hits = await self._by_substring(normalized_query, params, type_filter)
                return TagMatches(hits=hits, semantic=False)
            case VectorCapability.FULL | VectorCapability.APPROXIMATE:
                hits = await self._by_similarity(normalized_query, capability, params, type_filter)
                return TagMatches(hits=hits, semantic=True)

    async def _by_substring(self, normalized_query: str, params: dict, type_filter: str) -> list[TagHit]:
        words = query_words(normalized_query)
        if not words:
            return []
        query = (
            "MATCH (m:Memory)-[:HAS_TAG]->(t:Tag) "
            f"WHERE any(word IN $words WHERE toLower(t.name) CONTAINS word) {type_filter} "
            "WITH m, count(DISTINCT t) AS matches "
            "RETURN m.id AS id, m.name AS name, matches "
            "ORDER BY matches DESC, name, id "
            "LIMIT $limit"
        )
        try:
            rows = await self.store.run_query(query, {**params, "words": words})
        except Exception as e:
            raise ChannelFailure("tag", str(e)) from e
        return [TagHit(row["id"], float(row.get("matches") or 0)) for row in rows if row.get("id")]

    async def _by_similarity(
        self,
        normalized_query: str,
        capability: VectorCapability,
        params: dict,
        type_filter: str,
    ) -> list[TagHit]:
        try:
            embedding = await self.embedder.embed(normalized_query)
        except Exception as e:
            raise ChannelFailure("tag", f"embedding failed: {e}") from e

        expression = similarity_expression(capability, "t.embedding", "$embedding")
        query = (
            "MATCH (m:Memory)-[:HAS_TAG]->(t:Tag) "
            f"WHERE t.embedding IS NOT NULL {type_filter} "
            f"WITH m, max({expression}) AS similarity "
            "WHERE similarity >= $threshold "
            "RETURN m.id AS id, similarity "
            "ORDER BY similarity DESC, id "
            "LIMIT $limit"
        )
        try:
            rows = await self.store.run_query(
                query, {**params, "embedding": embedding, "threshold": self.similarity_threshold}
            )
        except Exception as e:
            raise ChannelFailure("tag", str(e)) from e
        return [TagHit(row["id"], float(row["similarity"])) for row in rows if row.get("id")]
