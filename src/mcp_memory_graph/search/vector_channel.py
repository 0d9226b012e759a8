"""
Vector channel: semantic similarity between the query and memory names.

The capability decides where cosine similarity is computed. Whichever path
runs, results are filtered with ``similarity >= threshold``, ordered by
similarity descending then id ascending, and cut at ``limit``.
"""

import logging

from ..embeddings import EmbeddingProvider
from ..errors import ChannelFailure
from ..graph.store import GraphStore
from ..models.search import VectorCapability, VectorHit
from ..utils.similarity import cosine_similarities
from .capability import detect_capability

logger = logging.getLogger(__name__)


def similarity_expression(capability: VectorCapability, stored: str, query_param: str) -> str:
    """Cypher expression for cosine similarity between a stored list and a parameter."""
    match capability:
        case VectorCapability.FULL:
            return f"(1.0 - vec.cosineDistance(vecf32({stored}), vecf32({query_param})))"
        case VectorCapability.APPROXIMATE:
            return f"gds.similarity.cosine({stored}, {query_param})"
        case VectorCapability.NONE:
            raise ValueError("No in-database similarity function without vector capability")


def _type_filter(memory_types: list[str] | None) -> str:
    return "AND m.memoryType IN $memoryTypes" if memory_types else ""


class VectorChannel:
    def __init__(self, store: GraphStore, embedder: EmbeddingProvider):
        self.store = store
        self.embedder = embedder

    async def search(
        self,
        query_text: str,
        limit: int,
        threshold: float,
        memory_types: list[str] | None = None,
    ) -> list[VectorHit]:
        try:
            embedding = await self.embedder.embed(query_text)
        except Exception as e:
            raise ChannelFailure("vector", f"embedding failed: {e}") from e

        capability = await detect_capability(self.store)
        params = {"embedding": embedding, "threshold": threshold, "limit": limit}
        if memory_types:
            params["memoryTypes"] = list(memory_types)

        match capability:
            case VectorCapability.FULL | VectorCapability.APPROXIMATE:
                hits = await self._search_in_database(capability, params, memory_types)
            case VectorCapability.NONE:
                hits = await self._search_in_process(embedding, params, memory_types)

        logger.debug(f"Vector channel ({capability.value}) returned {len(hits)} hits")
        return hits

    async def _search_in_database(
        self,
        capability: VectorCapability,
        params: dict,
        memory_types: list[str] | None,
    ) -> list[VectorHit]:
        expression = similarity_expression(capability, "m.nameEmbedding", "$embedding")
        query = (
            "MATCH (m:Memory) "
            f"WHERE m.nameEmbedding IS NOT NULL {_type_filter(memory_types)} "
            f"WITH m, {expression} AS similarity "
            "WHERE similarity >= $threshold "
            "RETURN m.id AS id, similarity "
            "ORDER BY similarity DESC, id ASC "
            "LIMIT $limit"
        )
        try:
            rows = await self.store.run_query(query, params)
        except Exception as e:
            raise ChannelFailure("vector", str(e)) from e
        return [VectorHit(row["id"], float(row["similarity"])) for row in rows if row.get("id")]

    async def _search_in_process(
        self,
        embedding: list[float],
        params: dict,
        memory_types: list[str] | None,
    ) -> list[VectorHit]:
        query = (
            "MATCH (m:Memory) "
            f"WHERE m.nameEmbedding IS NOT NULL {_type_filter(memory_types)} "
            "RETURN m.id AS id, m.nameEmbedding AS embedding"
        )
        try:
            rows = await self.store.run_query(query, {k: v for k, v in params.items() if k == "memoryTypes"})
        except Exception as e:
            raise ChannelFailure("vector", str(e)) from e

        rows = [row for row in rows if row.get("id")]
        scores = cosine_similarities(embedding, [row.get("embedding") for row in rows])
        hits = [
            VectorHit(row["id"], float(score))
            for row, score in zip(rows, scores)
            if score >= params["threshold"]
        ]
        hits.sort(key=lambda hit: (-hit.similarity, hit.memory_id))
        return hits[: params["limit"]]
