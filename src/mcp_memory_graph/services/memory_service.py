"""
Memory Service - business logic behind the MCP tools.

Write operations compute embeddings and tags here, at write time, so the
search channels only ever read. Every public method returns a plain dict
shaped for the MCP wire format; errors come back as ``{"success": False,
"error": ...}`` instead of raising.
"""

import asyncio
import json
import logging
from typing import Any

from ..config import settings
from ..embeddings import EmbeddingProvider
from ..errors import InvalidArgument, PipelineFailure
from ..graph.client import GraphClient
from ..graph.records import utc_now_iso
from ..graph.values import dump_metadata
from ..models.memory import CONTEXT_LEVELS, MemoryRecord, Relation
from ..search.classifier import classify
from ..search.filters import DateFilter
from ..search.orchestrator import SearchOrchestrator
from ..utils.ids import generate_id, is_valid_id
from ..utils.tag_extraction import extract_tags

logger = logging.getLogger(__name__)


class MemoryService:
    """Memory, observation, relation and search operations over the graph."""

    def __init__(
        self,
        graph: GraphClient,
        embedder: EmbeddingProvider,
        orchestrator: SearchOrchestrator | None = None,
    ):
        self._graph = graph
        self._embedder = embedder
        self._orchestrator = orchestrator or SearchOrchestrator(graph, embedder)

    # ── Embedding helpers ────────────────────────────────────────────────

    async def _embed_or_none(self, text: str) -> list[float] | None:
        """Embed text; a failure leaves the item without a vector (non-fatal)."""
        try:
            return await self._embedder.embed(text)
        except Exception as e:
            logger.warning(f"Embedding failed for {text[:40]!r} (non-fatal): {e}")
            return None

    async def _tag_payload(self, tags: list[str]) -> list[dict[str, Any]]:
        embeddings = await asyncio.gather(*(self._embed_or_none(tag) for tag in tags))
        return [{"name": tag, "embedding": emb} for tag, emb in zip(tags, embeddings)]

    # ── Memories ─────────────────────────────────────────────────────────

    async def _write_memory(
        self,
        memory_id: str,
        name: str,
        memory_type: str,
        observations: list[str],
        metadata: dict[str, Any] | None,
        tags: list[str] | None,
        written: list[str],
    ) -> list[str]:
        """Create the node, its observations and tags; returns the final tags.

        ``memory_id`` is appended to ``written`` as soon as the node exists.
        """
        name_embedding = await self._embed_or_none(name)
        await self._graph.create_memory(
            memory_id=memory_id,
            name=name,
            memory_type=memory_type,
            metadata=dump_metadata(metadata),
            name_embedding=name_embedding,
            created_at=utc_now_iso(),
        )
        written.append(memory_id)

        if observations:
            await self._graph.add_observations(memory_id, await self._observation_payload(observations, None, None))

        final_tags = extract_tags(name, observations, existing_tags=tags)
        await self._graph.set_tags(memory_id, await self._tag_payload(final_tags))
        return final_tags

    async def _discard(self, memory_ids: list[str]) -> None:
        """Remove memories left behind by a failed write."""
        for memory_id in memory_ids:
            try:
                await self._graph.delete_memory(memory_id)
                logger.info(f"Rolled back partially stored memory {memory_id}")
            except Exception as e:
                logger.warning(f"Could not roll back memory {memory_id}: {e}")

    async def store_memory(
        self,
        name: str,
        memory_type: str,
        observations: list[str] | None = None,
        metadata: dict[str, Any] | None = None,
        tags: list[str] | None = None,
    ) -> dict[str, Any]:
        """
        Create a memory with optional initial observations.

        The name is embedded for the vector channel. Tags given by the caller
        are kept first; extracted keyword tags fill the rest.

        A failure after the node is created deletes it again, so a failed
        store never leaves a partial memory behind.

        Returns:
            {success, memory_id, tags} or {success: False, error}
        """
        memory_id = generate_id()
        contents = observations or []
        written: list[str] = []
        try:
            final_tags = await self._write_memory(memory_id, name, memory_type, contents, metadata, tags, written)
        except Exception as e:
            logger.error(f"Failed to store memory: {e}")
            await self._discard(written)
            return {"success": False, "error": f"Failed to store memory: {e}"}

        logger.info(f"Stored memory {memory_id} ({memory_type}) with {len(contents)} observations")
        return {"success": True, "memory_id": memory_id, "tags": final_tags}

    async def store_batch(
        self,
        memories: list[dict[str, Any]],
        relations: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        """
        Store several memories and the relations between them in one call.

        Each memory may carry a ``local_id``. Relation endpoints name either a
        local id from the same call or an existing memory id. The call is all
        or nothing: any failure deletes every memory it created.

        Args:
            memories: ``{name, memory_type, local_id?, observations?, metadata?, tags?}`` dicts
            relations: ``{from_id, to_id, relation_type, strength?, source?, context?}`` dicts

        Returns:
            {success, created, connected, local_id_map} or {success: False, created: [], error}
        """
        relations = relations or []
        try:
            self._check_batch(memories, relations)
        except InvalidArgument as e:
            return {"success": False, "created": [], "connected": [], "error": str(e)}

        written: list[str] = []
        try:
            local_ids: dict[str, str] = {}
            for memory in memories:
                memory_id = generate_id()
                await self._write_memory(
                    memory_id,
                    memory["name"],
                    memory["memory_type"],
                    memory.get("observations") or [],
                    memory.get("metadata"),
                    memory.get("tags"),
                    written,
                )
                if memory.get("local_id"):
                    local_ids[memory["local_id"]] = memory_id

            connected = []
            for rel in relations:
                from_id = local_ids.get(rel["from_id"], rel["from_id"])
                to_id = local_ids.get(rel["to_id"], rel["to_id"])
                if from_id == to_id:
                    raise InvalidArgument(f"A memory cannot relate to itself: {rel['from_id']}")
                related = await self._graph.create_relation(
                    from_id=from_id,
                    to_id=to_id,
                    relation_type=rel["relation_type"],
                    strength=rel.get("strength"),
                    context=rel.get("context") or None,
                    source=rel.get("source"),
                    created_at=utc_now_iso(),
                )
                if not related:
                    raise InvalidArgument(
                        f"Relation {rel['from_id']} -> {rel['to_id']} ({rel['relation_type']}): "
                        "source or target memory not found"
                    )
                connected.append(
                    {
                        "from_id": from_id,
                        "to_id": to_id,
                        "relation_type": rel["relation_type"],
                        "strength": rel.get("strength"),
                        "source": rel.get("source"),
                    }
                )
        except Exception as e:
            logger.error(f"Batch store failed, rolling back {len(written)} memories: {e}")
            await self._discard(written)
            return {"success": False, "created": [], "connected": [], "error": f"Failed to store memories: {e}"}

        logger.info(f"Stored {len(written)} memories and {len(connected)} relations")
        return {"success": True, "created": written, "connected": connected, "local_id_map": local_ids}

    @staticmethod
    def _check_batch(memories: list[dict[str, Any]], relations: list[dict[str, Any]]) -> None:
        limits = settings.limits
        if not memories:
            raise InvalidArgument("memories cannot be empty")
        if len(memories) > limits.max_memories_per_operation:
            raise InvalidArgument(f"Too many memories: {len(memories)} > {limits.max_memories_per_operation}")
        if len(relations) > limits.max_relations_per_operation:
            raise InvalidArgument(f"Too many relations: {len(relations)} > {limits.max_relations_per_operation}")

        seen: set[str] = set()
        for memory in memories:
            local_id = memory.get("local_id")
            if not local_id:
                continue
            if local_id in seen:
                raise InvalidArgument(f"Duplicate local_id {local_id!r}; local ids must be unique within a call")
            if is_valid_id(local_id):
                raise InvalidArgument(f"local_id {local_id!r} looks like a memory id")
            seen.add(local_id)

    async def get_memory(self, memory_id: str) -> dict[str, Any]:
        try:
            row = await self._graph.get_memory(memory_id)
        except Exception as e:
            logger.error(f"Error getting memory: {e}")
            return {"found": False, "memory_id": memory_id, "error": f"Failed to get memory: {e}"}
        if row is None:
            return {"found": False, "memory_id": memory_id}
        return {"found": True, "memory": MemoryRecord.from_row(row).model_dump(exclude={"children"})}

    async def update_memory(
        self,
        memory_id: str,
        name: str | None = None,
        memory_type: str | None = None,
        metadata: dict[str, Any] | None = None,
        tags: list[str] | None = None,
    ) -> dict[str, Any]:
        """
        Update a memory's name, type, metadata or tags.

        A new name is re-embedded. When tags are given they replace the
        current ones; otherwise a rename re-derives tags from the new name.
        """
        try:
            current = await self._graph.get_memory(memory_id)
            if current is None:
                return {"success": False, "memory_id": memory_id, "error": "Memory not found"}
            record = MemoryRecord.from_row(current)

            fields: dict[str, Any] = {"modified_at": utc_now_iso()}
            if name is not None and name != record.name:
                fields["name"] = name
                fields["name_embedding"] = await self._embed_or_none(name)
            if memory_type is not None:
                fields["memory_type"] = memory_type
            if metadata is not None:
                fields["metadata"] = dump_metadata(metadata)

            await self._graph.update_memory(memory_id, fields)

            if tags is not None:
                new_tags = list(dict.fromkeys(t.strip().lower() for t in tags if t.strip()))
                await self._graph.set_tags(memory_id, await self._tag_payload(new_tags))
            elif "name" in fields:
                observations = [o.content for o in record.observations]
                new_tags = extract_tags(name, observations)
                await self._graph.set_tags(memory_id, await self._tag_payload(new_tags))

            updated = sorted(key for key in fields if key not in {"modified_at", "name_embedding"})
            return {"success": True, "memory_id": memory_id, "updated": updated}
        except ValueError as e:
            return {"success": False, "memory_id": memory_id, "error": str(e)}
        except Exception as e:
            logger.error(f"Failed to update memory: {e}")
            return {"success": False, "memory_id": memory_id, "error": f"Failed to update memory: {e}"}

    async def delete_memory(self, memory_id: str) -> dict[str, Any]:
        """Delete a memory with its observations and relations."""
        try:
            if await self._graph.delete_memory(memory_id):
                return {"success": True, "memory_id": memory_id}
            return {"success": False, "memory_id": memory_id, "error": "Memory not found"}
        except Exception as e:
            logger.error(f"Error deleting memory: {e}")
            return {"success": False, "memory_id": memory_id, "error": f"Failed to delete memory: {e}"}

    # ── Observations ─────────────────────────────────────────────────────

    async def _observation_payload(
        self, contents: list[str], source: str | None, confidence: float | None
    ) -> list[dict[str, Any]]:
        now = utc_now_iso()
        embeddings = await asyncio.gather(*(self._embed_or_none(content) for content in contents))
        return [
            {
                "id": generate_id(),
                "content": content,
                "createdAt": now,
                "source": source,
                "confidence": confidence,
                "embedding": embedding,
            }
            for content, embedding in zip(contents, embeddings)
        ]

    async def add_observations(
        self,
        memory_id: str,
        contents: list[str],
        source: str | None = None,
        confidence: float | None = None,
    ) -> dict[str, Any]:
        """Attach observations and fold their keywords into the memory's tags."""
        try:
            current = await self._graph.get_memory(memory_id)
            if current is None:
                return {"success": False, "memory_id": memory_id, "error": "Memory not found"}
            record = MemoryRecord.from_row(current)

            created = await self._graph.add_observations(
                memory_id, await self._observation_payload(contents, source, confidence)
            )
            tags = extract_tags(record.name, contents, existing_tags=record.tags)
            if tags != record.tags:
                await self._graph.set_tags(memory_id, await self._tag_payload(tags))

            return {"success": True, "memory_id": memory_id, "observation_ids": created}
        except Exception as e:
            logger.error(f"Failed to add observations: {e}")
            return {"success": False, "memory_id": memory_id, "error": f"Failed to add observations: {e}"}

    async def delete_observations(self, memory_id: str, observation_ids: list[str]) -> dict[str, Any]:
        try:
            deleted = await self._graph.delete_observations(memory_id, observation_ids)
            return {"success": True, "memory_id": memory_id, "deleted": deleted}
        except Exception as e:
            logger.error(f"Failed to delete observations: {e}")
            return {"success": False, "memory_id": memory_id, "error": f"Failed to delete observations: {e}"}

    # ── Relations ────────────────────────────────────────────────────────

    async def create_relation(
        self,
        from_id: str,
        to_id: str,
        relation_type: str,
        strength: float | None = None,
        context: list[str] | None = None,
        source: str | None = None,
    ) -> dict[str, Any]:
        """
        Create a typed relation between two memories.

        Idempotent: creating the same (from, to, relation_type) again
        succeeds without adding a second edge.
        """
        if from_id == to_id:
            return {"success": False, "error": "A memory cannot relate to itself"}
        try:
            created = await self._graph.create_relation(
                from_id=from_id,
                to_id=to_id,
                relation_type=relation_type,
                strength=strength,
                context=context,
                source=source,
                created_at=utc_now_iso(),
            )
            if created:
                return {"success": True, "from_id": from_id, "to_id": to_id, "relation_type": relation_type}
            return {
                "success": False,
                "error": "Source or target memory not found",
                "from_id": from_id,
                "to_id": to_id,
            }
        except Exception as e:
            logger.error(f"Failed to create relation: {e}")
            return {"success": False, "error": f"Failed to create relation: {e}"}

    async def get_relations(self, memory_id: str, relation_type: str | None = None) -> dict[str, Any]:
        try:
            rows = await self._graph.get_relations(memory_id, relation_type)
            relations = [Relation.from_row(row).model_dump() for row in rows]
            return {"memory_id": memory_id, "relations": relations, "count": len(relations)}
        except Exception as e:
            logger.error(f"Failed to get relations: {e}")
            return {"memory_id": memory_id, "relations": [], "count": 0, "error": str(e)}

    async def delete_relation(self, from_id: str, to_id: str, relation_type: str) -> dict[str, Any]:
        try:
            deleted = await self._graph.delete_relation(from_id, to_id, relation_type)
            if deleted:
                return {"success": True, "from_id": from_id, "to_id": to_id, "relation_type": relation_type}
            return {"success": False, "error": "Relation not found", "from_id": from_id, "to_id": to_id}
        except Exception as e:
            logger.error(f"Failed to delete relation: {e}")
            return {"success": False, "error": f"Failed to delete relation: {e}"}

    # ── Search ───────────────────────────────────────────────────────────

    async def find(
        self,
        query: str | list[str],
        limit: int | None = None,
        include_graph_context: bool = True,
        memory_types: list[str] | None = None,
        threshold: float | None = None,
        context_level: str = "full",
        order_by: str = "relevance",
        created_after: str | None = None,
        created_before: str | None = None,
        modified_since: str | None = None,
        accessed_since: str | None = None,
        traverse_from: str | None = None,
        traverse_relations: list[str] | None = None,
        max_depth: int | None = None,
        traverse_direction: str | None = None,
    ) -> dict[str, Any]:
        """
        Find memories by search, by id or by walking the graph.

        ``traverse_from`` walks relations from that memory. A list of ids
        (or a JSON array string such as ``'["id1", "id2"]'``) loads those
        memories. Anything else is a multi-channel search. Date filters,
        memory types and ordering apply to every route; ``context_level``
        controls how much of each memory is returned.

        Returns:
            {success, operation, query, context_level, memories, count}, plus
            ``intent`` for searches, or {success: False, error, query}
        """
        limit = limit if limit is not None else settings.search.default_limit
        threshold = threshold if threshold is not None else settings.search.default_threshold
        ids = _id_list(query)
        try:
            if context_level not in CONTEXT_LEVELS:
                raise InvalidArgument(
                    f"Invalid context level {context_level!r}: use {', '.join(CONTEXT_LEVELS)}"
                )
            if not traverse_from and (traverse_relations or max_depth is not None or traverse_direction):
                raise InvalidArgument("traverse_from is required when using graph traversal parameters")
            date_filter = DateFilter.parse(created_after, created_before, modified_since, accessed_since)
            with_context = include_graph_context and context_level != "minimal"

            response: dict[str, Any] = {"success": True}
            if traverse_from:
                response["operation"] = "traverse"
                results = await self._orchestrator.traverse(
                    traverse_from,
                    direction=traverse_direction or "both",
                    relation_types=traverse_relations,
                    max_depth=max_depth,
                    limit=limit,
                    memory_types=memory_types,
                    date_filter=date_filter,
                    order_by=order_by,
                )
            elif ids is not None:
                response["operation"] = "retrieve"
                results = await self._orchestrator.retrieve(
                    ids,
                    include_graph_context=with_context,
                    memory_types=memory_types,
                    date_filter=date_filter,
                    order_by=order_by,
                )
            else:
                response["operation"] = "search"
                response["intent"] = classify(query).type.value
                results = await self._orchestrator.search(
                    query,
                    limit=limit,
                    include_graph_context=with_context,
                    memory_types=memory_types,
                    threshold=threshold,
                    date_filter=date_filter,
                    order_by=order_by,
                )
        except (InvalidArgument, PipelineFailure) as e:
            return {"success": False, "error": str(e), "query": query}

        response.update(
            {
                "query": query,
                "context_level": context_level,
                "memories": [result.to_response(context_level) for result in results],
                "count": len(results),
            }
        )
        return response

    async def search(
        self,
        query: str,
        limit: int | None = None,
        include_graph_context: bool = True,
        memory_types: list[str] | None = None,
        threshold: float | None = None,
    ) -> dict[str, Any]:
        """Run a multi-channel search and shape the results for the wire."""
        return await self.find(
            query,
            limit=limit,
            include_graph_context=include_graph_context,
            memory_types=memory_types,
            threshold=threshold,
        )

    async def check_database_health(self) -> dict[str, Any]:
        stats = await self._graph.get_graph_stats()
        return {"status": "healthy" if stats.get("status") == "operational" else "unhealthy", "graph": stats}


def _id_list(query: Any) -> list[str] | None:
    """Return the ids a find query names, or None for a search query.

    MCP clients sometimes send arrays as JSON strings; those count as lists.
    """
    if isinstance(query, list):
        return [str(item) for item in query]
    if isinstance(query, str) and query.startswith("[") and query.endswith("]"):
        try:
            parsed = json.loads(query)
        except ValueError:
            return None
        if isinstance(parsed, list) and all(isinstance(item, str) for item in parsed):
            return parsed
    return None
