"""
Search orchestrator: the single entry point for memory search.

    classify -> wildcard summary
             -> channel fan-out -> materialize -> aggregate -> graph context

Besides free-text search it answers two direct lookups: memories by id,
and memories reached by walking relations from a starting memory.

Channels run concurrently. A channel that fails contributes nothing and
is logged; the other channels' results still count. Failures after the
fan-out (materialization, aggregation, scoring) raise PipelineFailure;
a failed search never falls back to wildcard results. Cancelling the
caller cancels every in-flight channel.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable
from typing import Any, TypeVar

from ..config import settings
from ..embeddings import EmbeddingProvider
from ..errors import EnrichmentFailure, InvalidArgument, PipelineFailure
from ..graph.records import fetch_memories
from ..graph.store import GraphStore
from ..models.memory import FoundMemory, GraphContext, MemoryRecord, RankedResult
from ..models.search import (
    ChannelOutcome,
    ChannelOutputs,
    ExactMatches,
    QueryIntent,
    QueryType,
    ScoreWeights,
    TagMatches,
    VectorCapability,
)
from .capability import detect_capability
from .classifier import classify
from .exact_channel import ExactChannel
from .filters import DateFilter, OrderBy, apply_order, order_key_values
from .graph_context import GraphContextEnricher
from .scorer import aggregate
from .tag_channel import TagChannel
from .traversal import Direction, GraphTraversal
from .vector_channel import VectorChannel
from .wildcard import WildcardResponder

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def _run_channel(name: str, work: Awaitable[T]) -> ChannelOutcome[T]:
    """Await one channel, turning any ordinary exception into an error outcome."""
    try:
        return ChannelOutcome(name=name, value=await work)
    except Exception as e:
        logger.warning(f"Search channel '{name}' failed (non-fatal): {e}")
        return ChannelOutcome(name=name, error=e)


class SearchOrchestrator:
    """Multi-channel memory search."""

    def __init__(
        self,
        store: GraphStore,
        embedder: EmbeddingProvider,
        weights: ScoreWeights | None = None,
    ):
        self.store = store
        self.weights = weights or ScoreWeights.from_settings(settings.search)
        self.vector_channel = VectorChannel(store, embedder)
        self.exact_channel = ExactChannel(store)
        self.tag_channel = TagChannel(store, embedder)
        self.enricher = GraphContextEnricher(store)
        self.wildcard = WildcardResponder(store)
        self.traversal = GraphTraversal(store)

    async def search(
        self,
        query: Any,
        limit: int = 10,
        include_graph_context: bool = True,
        memory_types: list[str] | None = None,
        threshold: float = 0.1,
        date_filter: DateFilter | None = None,
        order_by: OrderBy = "relevance",
    ) -> list[RankedResult]:
        """
        Search memories.

        Args:
            query: Free text, a literal token (dates, numbers), or "*" / "all"
            limit: Maximum results (> 0)
            include_graph_context: Attach ancestors/descendants to each result
            memory_types: Restrict results to these memory types
            threshold: Minimum composite score in [0, 1]
            date_filter: Only return memories within these date bounds
            order_by: "relevance", or reorder the selected results by a date, newest first.
                The wildcard overview keeps its structural order.

        Returns:
            Results ordered by score descending, then id

        Raises:
            InvalidArgument: Bad limit, threshold, order or empty query
            PipelineFailure: Materialization or scoring failed
        """
        _check_limit(limit)
        if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
            raise InvalidArgument(f"threshold must be a number, got {threshold!r}")
        if not 0.0 <= threshold <= 1.0:
            raise InvalidArgument(f"threshold must be within [0, 1], got {threshold!r}")
        _check_order_by(order_by)

        intent = classify(query)
        started = time.perf_counter()

        if intent.type is QueryType.WILDCARD:
            results = await self._wildcard(limit, memory_types, date_filter)
        else:
            results = await self._search(
                intent, limit, include_graph_context, memory_types, threshold, date_filter, order_by
            )

        if settings.debug.latency_metrics:
            elapsed = (time.perf_counter() - started) * 1000
            logger.info(f"search intent={intent.type.value} results={len(results)} latency_ms={elapsed:.1f}")
        return results

    async def retrieve(
        self,
        ids: list[str],
        include_graph_context: bool = True,
        memory_types: list[str] | None = None,
        date_filter: DateFilter | None = None,
        order_by: OrderBy = "relevance",
    ) -> list[FoundMemory]:
        """
        Load memories by id.

        Results follow the order the ids were given in ("relevance"), or a
        date order. Unknown ids, and memories the type or date filters
        exclude, are left out.
        """
        _check_order_by(order_by)
        wanted = list(dict.fromkeys(memory_id for memory_id in ids if memory_id))
        if not wanted:
            raise InvalidArgument("at least one memory id is required")

        try:
            rows = await fetch_memories(self.store, wanted, memory_types, date_filter)
            records = {row["id"]: MemoryRecord.from_row(row) for row in rows if row.get("id")}
        except Exception as e:
            logger.error(f"Retrieval failed for {len(wanted)} ids: {e}")
            raise PipelineFailure(f"Retrieval failed: {e}") from e

        results = [FoundMemory(**records[memory_id].model_dump()) for memory_id in wanted if memory_id in records]
        results = apply_order(results, order_by, order_key_values(rows, order_by))
        if include_graph_context and results:
            await self._attach_context(results)
        return results

    async def traverse(
        self,
        start_id: str,
        direction: Direction = "both",
        relation_types: list[str] | None = None,
        max_depth: int | None = None,
        limit: int = 10,
        memory_types: list[str] | None = None,
        date_filter: DateFilter | None = None,
        order_by: OrderBy = "relevance",
    ) -> list[FoundMemory]:
        """
        Memories reachable from ``start_id``, nearest first.

        Each result's ``related`` holds the starting memory: as an ancestor
        when it was reached outbound, as a descendant when reached inbound.
        """
        _check_limit(limit)
        _check_order_by(order_by)
        hits = await self.traversal.traverse(start_id, direction, relation_types, max_depth)
        if not hits:
            return []

        try:
            rows = await fetch_memories(self.store, [hit.memory_id for hit in hits], memory_types, date_filter)
            records = {row["id"]: MemoryRecord.from_row(row) for row in rows if row.get("id")}
        except Exception as e:
            logger.error(f"Traversal materialization failed from {start_id}: {e}")
            raise PipelineFailure(f"Traversal failed: {e}") from e

        results: list[FoundMemory] = []
        for hit in hits:
            record = records.get(hit.memory_id)
            if record is None:
                continue
            if hit.direction == "outbound":
                context = GraphContext(ancestors=[hit.anchor])
            else:
                context = GraphContext(descendants=[hit.anchor])
            results.append(FoundMemory(**record.model_dump(), related=context))
            if len(results) >= limit:
                break
        return apply_order(results, order_by, order_key_values(rows, order_by))

    async def _wildcard(
        self, limit: int, memory_types: list[str] | None, date_filter: DateFilter | None
    ) -> list[RankedResult]:
        try:
            records = await self.wildcard.summarize(limit, memory_types, date_filter)
        except Exception as e:
            logger.error(f"Wildcard summary failed: {e}")
            raise PipelineFailure(f"Wildcard summary failed: {e}") from e
        return [
            RankedResult(**record.model_dump(exclude={"observations"}), score=1.0, match_type="exact")
            for record in records
        ]

    async def _fan_out(
        self,
        intent: QueryIntent,
        fetch_limit: int,
        memory_types: list[str] | None,
        threshold: float,
    ) -> ChannelOutputs:
        capability = await detect_capability(self.store)
        query = intent.normalized_query

        channels: dict[str, Awaitable[Any]] = {}
        if intent.type is QueryType.SEMANTIC_SEARCH:
            # Literal tokens (dates, ids, numbers) have no useful embedding
            channels["vector"] = self.vector_channel.search(query, fetch_limit, threshold, memory_types)
        channels["exact"] = self.exact_channel.search(query, fetch_limit, memory_types)
        channels["tags"] = self.tag_channel.search(query, fetch_limit, memory_types, capability)

        outcomes = await asyncio.gather(*(_run_channel(name, work) for name, work in channels.items()))
        by_name = {outcome.name: outcome for outcome in outcomes}

        outputs = ChannelOutputs()
        if "vector" in by_name and by_name["vector"].ok:
            outputs.vector = by_name["vector"].value or []
        if by_name["exact"].ok:
            outputs.exact = by_name["exact"].value or ExactMatches()
        if by_name["tags"].ok:
            outputs.tags = by_name["tags"].value or TagMatches(semantic=capability is not VectorCapability.NONE)
        return outputs

    async def _search(
        self,
        intent: QueryIntent,
        limit: int,
        include_graph_context: bool,
        memory_types: list[str] | None,
        threshold: float,
        date_filter: DateFilter | None = None,
        order_by: OrderBy = "relevance",
    ) -> list[RankedResult]:
        fetch_limit = limit * settings.search.channel_fetch_multiplier
        outputs = await self._fan_out(intent, fetch_limit, memory_types, threshold)

        candidate_ids = outputs.candidate_ids()
        if not candidate_ids:
            return []

        try:
            rows = await fetch_memories(self.store, candidate_ids, memory_types, date_filter)
            records = {row["id"]: MemoryRecord.from_row(row) for row in rows if row.get("id")}
            results = aggregate(outputs, records, intent.normalized_query, self.weights, threshold, limit)
        except Exception as e:
            logger.error(f"Search pipeline failed for {intent.normalized_query!r}: {e}")
            raise PipelineFailure(f"Search failed: {e}") from e

        results = apply_order(results, order_by, order_key_values(rows, order_by))
        if include_graph_context and results:
            await self._attach_context(results)
        return results

    async def _attach_context(self, results: list[FoundMemory]) -> None:
        try:
            contexts = await self.enricher.enrich([result.id for result in results])
        except EnrichmentFailure as e:
            logger.warning(f"Graph context unavailable (non-fatal): {e}")
            return
        for result in results:
            context = contexts.get(result.id)
            if context and (context.ancestors or context.descendants):
                result.related = context


def _check_limit(limit: Any) -> None:
    if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
        raise InvalidArgument(f"limit must be a positive integer, got {limit!r}")


def _check_order_by(order_by: Any) -> None:
    if order_by not in ("relevance", "created", "modified", "accessed"):
        raise InvalidArgument(f"Invalid order_by {order_by!r}: use relevance, created, modified or accessed")
