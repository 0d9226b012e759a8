"""
FalkorDB graph client for the memory knowledge graph.

All search channels talk to the graph through ``run_query``, which returns
plain ``list[dict]`` rows keyed by the RETURN aliases. The write helpers
below are the only places that mutate the graph.

Transient connection errors are retried here with tenacity; nothing above
this layer retries.
"""

import logging
from typing import Any

from falkordb.asyncio import FalkorDB
from redis.asyncio import BlockingConnectionPool
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from .records import fetch_memories
from .schema import FULLTEXT_STATEMENTS, SCHEMA_STATEMENTS

logger = logging.getLogger(__name__)

# Properties update_memory is allowed to write, mapped to their graph names.
_UPDATABLE_PROPERTIES = {
    "name": "name",
    "memory_type": "memoryType",
    "metadata": "metadata",
    "name_embedding": "nameEmbedding",
    "modified_at": "modifiedAt",
}


def is_transient_error(exception: BaseException) -> bool:
    """Connection drops and timeouts are retryable; query errors are not."""
    return isinstance(exception, (RedisConnectionError, RedisTimeoutError, ConnectionResetError))


def result_to_rows(result: Any) -> list[dict[str, Any]]:
    """Convert a FalkorDB QueryResult into dicts keyed by column alias."""
    result_set = getattr(result, "result_set", None) or []
    if not result_set:
        return []
    header = getattr(result, "header", None) or []
    columns: list[str] = []
    for i, column in enumerate(header):
        # FalkorDB headers are [column_type, name] pairs; tolerate bare names.
        if isinstance(column, (list, tuple)):
            name = column[1] if len(column) > 1 else column[0]
        else:
            name = column
        if isinstance(name, bytes):
            name = name.decode()
        columns.append(str(name) if name is not None else f"col{i}")
    if not columns:
        columns = [f"col{i}" for i in range(len(result_set[0]))]
    return [dict(zip(columns, row)) for row in result_set]


class GraphClient:
    """
    Async FalkorDB client for the memory knowledge graph.

    Owns a Redis connection pool. Concurrent search channels share it, so
    the pool size bounds how many graph queries run at once.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        password: str | None = None,
        graph_name: str = "memory_graph",
        max_connections: int = 16,
    ):
        self.host = host
        self.port = port
        self.password = password
        self.graph_name = graph_name
        self.max_connections = max_connections

        self._pool: BlockingConnectionPool | None = None
        self._db: FalkorDB | None = None
        self._graph = None
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize connection pool, select graph, and apply schema."""
        if self._initialized:
            return

        self._pool = BlockingConnectionPool(
            host=self.host,
            port=self.port,
            password=self.password,
            max_connections=self.max_connections,
            timeout=None,
            decode_responses=True,
        )

        self._db = FalkorDB(connection_pool=self._pool)
        self._graph = self._db.select_graph(self.graph_name)

        for stmt in SCHEMA_STATEMENTS + FULLTEXT_STATEMENTS:
            try:
                await self._graph.query(stmt)
            except Exception as e:
                if "already indexed" not in str(e).lower():
                    logger.warning(f"Schema statement warning: {stmt} -> {e}")

        self._initialized = True
        logger.info(f"GraphClient initialized: {self.host}:{self.port}/{self.graph_name}")

    @property
    def graph(self):
        if self._graph is None:
            raise RuntimeError("GraphClient not initialized. Call initialize() first.")
        return self._graph

    # ── Query execution ──────────────────────────────────────────────────

    @retry(
        retry=retry_if_exception(is_transient_error),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        reraise=True,
    )
    async def run_query(self, query: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """Run a Cypher statement and return its rows as dicts."""
        result = await self.graph.query(query, params=params or {})
        return result_to_rows(result)

    async def _scalar(self, query: str, params: dict[str, Any], key: str) -> int:
        rows = await self.run_query(query, params)
        if not rows or rows[0].get(key) is None:
            return 0
        return int(rows[0][key])

    # ── Memory nodes ─────────────────────────────────────────────────────

    async def create_memory(
        self,
        memory_id: str,
        name: str,
        memory_type: str,
        metadata: str,
        name_embedding: list[float] | None,
        created_at: str,
    ) -> None:
        await self.run_query(
            "CREATE (m:Memory {id: $id, name: $name, memoryType: $memoryType, metadata: $metadata, "
            "createdAt: $now, modifiedAt: $now, lastAccessed: $now, nameEmbedding: $embedding})",
            {
                "id": memory_id,
                "name": name,
                "memoryType": memory_type,
                "metadata": metadata,
                "now": created_at,
                "embedding": name_embedding,
            },
        )

    async def get_memory(self, memory_id: str) -> dict[str, Any] | None:
        """Fetch one memory with observations and tags; touches lastAccessed."""
        rows = await fetch_memories(self, [memory_id])
        return rows[0] if rows else None

    async def update_memory(self, memory_id: str, fields: dict[str, Any]) -> bool:
        """
        Update properties on a memory node.

        Args:
            memory_id: Memory to update
            fields: Keys from name, memory_type, metadata, name_embedding, modified_at

        Returns:
            True if the memory exists and was updated
        """
        unknown = set(fields) - set(_UPDATABLE_PROPERTIES)
        if unknown:
            raise ValueError(f"Cannot update properties: {sorted(unknown)}")
        if not fields:
            return False

        set_clause = ", ".join(f"m.{_UPDATABLE_PROPERTIES[key]} = ${key}" for key in fields)
        return (
            await self._scalar(
                f"MATCH (m:Memory {{id: $id}}) SET {set_clause} RETURN count(m) AS updated",
                {"id": memory_id, **fields},
                "updated",
            )
            > 0
        )

    async def delete_memory(self, memory_id: str) -> bool:
        """Delete a memory, its observations and all its edges."""
        await self.run_query(
            "MATCH (m:Memory {id: $id})-[:HAS_OBSERVATION]->(o:Observation) DETACH DELETE o",
            {"id": memory_id},
        )
        deleted = await self._scalar(
            "MATCH (m:Memory {id: $id}) DETACH DELETE m RETURN count(m) AS deleted",
            {"id": memory_id},
            "deleted",
        )
        return deleted > 0

    # ── Tags ─────────────────────────────────────────────────────────────

    async def set_tags(self, memory_id: str, tags: list[dict[str, Any]]) -> None:
        """
        Replace a memory's tags.

        Tag nodes are shared between memories and keyed by name; an existing
        tag keeps its embedding.

        Args:
            memory_id: Memory to tag
            tags: ``[{"name": str, "embedding": list[float] | None}, ...]``
        """
        await self.run_query(
            "MATCH (m:Memory {id: $id})-[r:HAS_TAG]->(:Tag) DELETE r",
            {"id": memory_id},
        )
        if not tags:
            return
        await self.run_query(
            "MATCH (m:Memory {id: $id}) "
            "UNWIND $tags AS tag "
            "MERGE (t:Tag {name: tag.name}) "
            "ON CREATE SET t.embedding = tag.embedding "
            "MERGE (m)-[:HAS_TAG]->(t)",
            {"id": memory_id, "tags": tags},
        )

    async def list_tags_missing_embeddings(self, limit: int = 1000) -> list[str]:
        rows = await self.run_query(
            "MATCH (t:Tag) WHERE t.embedding IS NULL RETURN t.name AS name ORDER BY name LIMIT $limit",
            {"limit": limit},
        )
        return [row["name"] for row in rows]

    async def set_tag_embedding(self, name: str, embedding: list[float]) -> None:
        await self.run_query(
            "MATCH (t:Tag {name: $name}) SET t.embedding = $embedding",
            {"name": name, "embedding": embedding},
        )

    # ── Observations ─────────────────────────────────────────────────────

    async def add_observations(self, memory_id: str, observations: list[dict[str, Any]]) -> list[str]:
        """
        Attach observations to a memory.

        Returns:
            Ids of the created observations; empty if the memory does not exist
        """
        if not observations:
            return []
        rows = await self.run_query(
            "MATCH (m:Memory {id: $id}) "
            "UNWIND $observations AS obs "
            "CREATE (o:Observation {id: obs.id, content: obs.content, createdAt: obs.createdAt, "
            "source: obs.source, confidence: obs.confidence, embedding: obs.embedding}) "
            "CREATE (m)-[:HAS_OBSERVATION]->(o) "
            "RETURN o.id AS id",
            {"id": memory_id, "observations": observations},
        )
        return [row["id"] for row in rows]

    async def delete_observations(self, memory_id: str, observation_ids: list[str]) -> int:
        """Delete observations of a memory by id. Returns the number deleted."""
        if not observation_ids:
            return 0
        return await self._scalar(
            "MATCH (m:Memory {id: $id})-[:HAS_OBSERVATION]->(o:Observation) "
            "WHERE o.id IN $ids "
            "DETACH DELETE o RETURN count(o) AS deleted",
            {"id": memory_id, "ids": observation_ids},
            "deleted",
        )

    # ── Relations ────────────────────────────────────────────────────────

    async def create_relation(
        self,
        from_id: str,
        to_id: str,
        relation_type: str,
        strength: float | None = None,
        context: list[str] | None = None,
        source: str | None = None,
        created_at: str | None = None,
    ) -> bool:
        """
        Create a RELATES_TO edge (MERGE = idempotent per relation type).

        Creating the same (from, to, relation_type) twice leaves exactly one
        edge; the second call does not overwrite the first's properties.

        Returns:
            True if both memories exist (edge present after the call)
        """
        count = await self._scalar(
            "MATCH (a:Memory {id: $from}), (b:Memory {id: $to}) "
            "MERGE (a)-[r:RELATES_TO {relationType: $relationType}]->(b) "
            "ON CREATE SET r.strength = $strength, r.context = $context, r.source = $source, r.createdAt = $createdAt "
            "RETURN count(r) AS related",
            {
                "from": from_id,
                "to": to_id,
                "relationType": relation_type,
                "strength": strength,
                "context": context or [],
                "source": source,
                "createdAt": created_at,
            },
            "related",
        )
        return count > 0

    async def delete_relation(self, from_id: str, to_id: str, relation_type: str) -> bool:
        deleted = await self._scalar(
            "MATCH (a:Memory {id: $from})-[r:RELATES_TO {relationType: $relationType}]->(b:Memory {id: $to}) "
            "DELETE r RETURN count(r) AS deleted",
            {"from": from_id, "to": to_id, "relationType": relation_type},
            "deleted",
        )
        return deleted > 0

    async def get_relations(self, memory_id: str, relation_type: str | None = None) -> list[dict[str, Any]]:
        """List incoming and outgoing RELATES_TO edges of a memory, oldest first."""
        type_filter = " AND r.relationType = $relationType" if relation_type else ""
        return await self.run_query(
            "MATCH (a:Memory)-[r:RELATES_TO]->(b:Memory) "
            f"WHERE (a.id = $id OR b.id = $id){type_filter} "
            "RETURN a.id AS fromId, b.id AS toId, r.relationType AS relationType, r.strength AS strength, "
            "r.context AS context, r.source AS source, r.createdAt AS createdAt "
            "ORDER BY createdAt, fromId, toId",
            {"id": memory_id, "relationType": relation_type},
        )

    # ── Maintenance ──────────────────────────────────────────────────────

    async def list_memories_missing_embeddings(self, limit: int = 1000) -> list[dict[str, Any]]:
        return await self.run_query(
            "MATCH (m:Memory) WHERE m.nameEmbedding IS NULL RETURN m.id AS id, m.name AS name ORDER BY id LIMIT $limit",
            {"limit": limit},
        )

    async def get_graph_stats(self) -> dict[str, Any]:
        """Get graph statistics for health checks."""
        try:
            memories = await self._scalar("MATCH (m:Memory) RETURN count(m) AS n", {}, "n")
            observations = await self._scalar("MATCH (o:Observation) RETURN count(o) AS n", {}, "n")
            tags = await self._scalar("MATCH (t:Tag) RETURN count(t) AS n", {}, "n")
            relations = await self._scalar("MATCH ()-[r:RELATES_TO]->() RETURN count(r) AS n", {}, "n")
            return {
                "graph_name": self.graph_name,
                "memory_count": memories,
                "observation_count": observations,
                "tag_count": tags,
                "relation_count": relations,
                "status": "operational",
            }
        except Exception as e:
            logger.error(f"Failed to get graph stats: {e}")
            return {
                "graph_name": self.graph_name,
                "status": "error",
                "error": str(e),
            }

    async def close(self) -> None:
        """Close the connection pool."""
        if self._pool is not None:
            try:
                await self._pool.aclose()
                logger.info("GraphClient connection pool closed")
            except Exception as e:
                logger.warning(f"Error closing GraphClient pool: {e}")
            finally:
                self._pool = None
                self._db = None
                self._graph = None
                self._initialized = False
