#!/usr/bin/env python3
"""MCP server for the memory graph.

Native MCP protocol implementation using FastMCP with Pydantic-validated
tool inputs. Each tool handler constructs an input model for validation
and delegates to MemoryService.
"""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

from fastmcp import Context, FastMCP
from pydantic import ValidationError

from .config import settings
from .embeddings import SentenceTransformerEmbedder
from .graph.client import GraphClient
from .graph.factory import create_graph_client
from .models.mcp_inputs import (
    FindParams,
    MemoryIdParams,
    ObservationParams,
    RelationParams,
    StoreBatchParams,
    StoreMemoryParams,
    UpdateMemoryParams,
)
from .services.memory_service import MemoryService

logger = logging.getLogger(__name__)


def _inject_latency(response: dict[str, Any], start: float) -> dict[str, Any]:
    """Add latency_ms to a response if metrics are enabled."""
    if settings.debug.latency_metrics:
        response["latency_ms"] = round((time.perf_counter() - start) * 1000, 1)
    return response


@dataclass
class MCPServerContext:
    """Application context for the MCP server with all required components."""

    graph: GraphClient
    memory_service: MemoryService


@asynccontextmanager
async def mcp_server_lifespan(server: FastMCP) -> AsyncIterator[MCPServerContext]:
    """Connect to the graph and build the service; close the pool on shutdown."""
    graph = await create_graph_client()
    memory_service = MemoryService(graph, SentenceTransformerEmbedder())
    try:
        yield MCPServerContext(graph=graph, memory_service=memory_service)
    finally:
        logger.info("Shutting down MCP Memory Graph components...")
        await graph.close()


mcp = FastMCP("MCP Memory Graph", lifespan=mcp_server_lifespan)


def _service(ctx: Context) -> MemoryService:
    return ctx.request_context.lifespan_context.memory_service


# =============================================================================
# MEMORY OPERATIONS
# =============================================================================


@mcp.tool()
async def memory_store(
    name: str,
    memory_type: str,
    ctx: Context,
    observations: list[str] | None = None,
    metadata: dict[str, Any] | None = None,
    tags: str | list[str] | None = None,
) -> dict[str, Any]:
    """Store a new memory in the knowledge graph.

    Args:
        name: Short title; embedded for semantic search
        memory_type: Classification, e.g. "project", "person", "decision"
        observations: Initial facts about the memory
        metadata: Structured data; searchable by exact and fulltext match
        tags: Labels, accepts ["tag1", "tag2"] or "tag1,tag2". Keyword tags are added automatically.

    Returns:
        {success, memory_id, tags}
    """
    _t0 = time.perf_counter()
    try:
        params = StoreMemoryParams(
            name=name,
            memory_type=memory_type,
            observations=observations or [],
            metadata=metadata,
            tags=tags,
        )
    except ValidationError as e:
        return _inject_latency({"success": False, "error": str(e)}, _t0)

    result = await _service(ctx).store_memory(
        name=params.name,
        memory_type=params.memory_type,
        observations=params.observations,
        metadata=params.metadata,
        tags=params.tags or None,
    )
    return _inject_latency(result, _t0)


@mcp.tool()
async def memory_store_batch(
    memories: list[dict[str, Any]],
    ctx: Context,
    relations: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Store several memories and connect them in one all-or-nothing call.

    Args:
        memories: [{name, memory_type, local_id?, observations?, metadata?, tags?}]
        relations: [{from_id, to_id, relation_type, strength?, source?, context?}].
            from_id/to_id may be a local_id from this call or an existing memory id.

    Returns:
        {success, created: [ids], connected: [...], local_id_map: {local_id: id}}
    """
    _t0 = time.perf_counter()
    try:
        params = StoreBatchParams(memories=memories, relations=relations or [])
    except ValidationError as e:
        return _inject_latency({"success": False, "created": [], "connected": [], "error": str(e)}, _t0)

    result = await _service(ctx).store_batch(
        [m.model_dump() for m in params.memories],
        [r.model_dump() for r in params.relations],
    )
    return _inject_latency(result, _t0)


@mcp.tool()
async def memory_find(
    query: str | list[str],
    ctx: Context,
    limit: int = 10,
    include_graph_context: bool = True,
    memory_types: str | list[str] | None = None,
    threshold: float = 0.1,
    context_level: str = "full",
    order_by: str = "relevance",
    created_after: str | None = None,
    created_before: str | None = None,
    modified_since: str | None = None,
    accessed_since: str | None = None,
    traverse_from: str | None = None,
    traverse_relations: str | list[str] | None = None,
    max_depth: int | None = None,
    traverse_direction: str | None = None,
) -> dict[str, Any]:
    """Find memories by meaning, exact value, tag, id, or graph walk.

    Free text runs semantic, exact/fulltext and tag matching together.
    Queries without letters (dates, numbers, ids) skip semantic matching.
    "*" or "all" returns an overview of root memories and their children.
    A list of ids returns exactly those memories.

    Args:
        query: Search text, a literal token, "*", or a list of memory ids
        limit: Maximum results (1-200)
        include_graph_context: Attach up to 3 ancestors and descendants per result
        memory_types: Only return these memory types
        threshold: Minimum relevance score in [0, 1]
        context_level: "full" (default), "minimal" (id, name, type, score) or
            "relations-only" (minimal plus related memories)
        order_by: "relevance" (default), "created", "modified" or "accessed" (newest first)
        created_after: ISO date ("2025-01-01") or relative ("12h", "7d", "3m", "1y")
        created_before: Same formats as created_after
        modified_since: Same formats as created_after
        accessed_since: Same formats as created_after
        traverse_from: Walk relations from this memory id instead of searching
        traverse_relations: Only follow these relation types
        max_depth: Hops to walk (default 2)
        traverse_direction: "outbound", "inbound" or "both" (default)

    Returns:
        {success, operation, query, context_level, memories: [...], count}
    """
    _t0 = time.perf_counter()
    try:
        params = FindParams(
            query=query,
            limit=limit,
            include_graph_context=include_graph_context,
            memory_types=memory_types,
            threshold=threshold,
            context_level=context_level,
            order_by=order_by,
            created_after=created_after,
            created_before=created_before,
            modified_since=modified_since,
            accessed_since=accessed_since,
            traverse_from=traverse_from,
            traverse_relations=traverse_relations,
            max_depth=max_depth,
            traverse_direction=traverse_direction,
        )
    except ValidationError as e:
        return _inject_latency({"success": False, "error": str(e)}, _t0)

    result = await _service(ctx).find(
        params.query,
        limit=params.limit,
        include_graph_context=params.include_graph_context,
        memory_types=params.memory_types or None,
        threshold=params.threshold,
        context_level=params.context_level,
        order_by=params.order_by,
        created_after=params.created_after,
        created_before=params.created_before,
        modified_since=params.modified_since,
        accessed_since=params.accessed_since,
        traverse_from=params.traverse_from,
        traverse_relations=params.traverse_relations,
        max_depth=params.max_depth,
        traverse_direction=params.traverse_direction,
    )
    return _inject_latency(result, _t0)


@mcp.tool()
async def memory_get(memory_id: str, ctx: Context) -> dict[str, Any]:
    """Fetch one memory with its observations and tags.

    Returns:
        {found, memory} or {found: False, memory_id}
    """
    _t0 = time.perf_counter()
    try:
        params = MemoryIdParams(memory_id=memory_id)
    except ValidationError as e:
        return _inject_latency({"found": False, "error": str(e)}, _t0)
    return _inject_latency(await _service(ctx).get_memory(params.memory_id), _t0)


@mcp.tool()
async def memory_update(
    memory_id: str,
    ctx: Context,
    name: str | None = None,
    memory_type: str | None = None,
    metadata: dict[str, Any] | None = None,
    tags: str | list[str] | None = None,
) -> dict[str, Any]:
    """Update a memory's name, type, metadata or tags.

    Returns:
        {success, memory_id, updated: [field names]}
    """
    _t0 = time.perf_counter()
    try:
        params = UpdateMemoryParams(
            memory_id=memory_id, name=name, memory_type=memory_type, metadata=metadata, tags=tags
        )
    except ValidationError as e:
        return _inject_latency({"success": False, "error": str(e)}, _t0)

    result = await _service(ctx).update_memory(
        params.memory_id,
        name=params.name,
        memory_type=params.memory_type,
        metadata=params.metadata,
        tags=params.tags,
    )
    return _inject_latency(result, _t0)


@mcp.tool()
async def memory_delete(memory_id: str, ctx: Context) -> dict[str, Any]:
    """Permanently delete a memory, its observations and its relations.

    Warning: Deletion is permanent.
    """
    _t0 = time.perf_counter()
    try:
        params = MemoryIdParams(memory_id=memory_id)
    except ValidationError as e:
        return _inject_latency({"success": False, "error": str(e)}, _t0)
    return _inject_latency(await _service(ctx).delete_memory(params.memory_id), _t0)


@mcp.tool()
async def observation(
    action: str,
    memory_id: str,
    ctx: Context,
    contents: list[str] | None = None,
    observation_ids: str | list[str] | None = None,
    source: str | None = None,
    confidence: float | None = None,
) -> dict[str, Any]:
    """Add or delete observations on a memory.

    Args:
        action: "add" (requires contents) or "delete" (requires observation_ids)
        memory_id: Memory to modify
        contents: Observation texts to add
        observation_ids: Ids of observations to delete
        source: Provenance of added observations
        confidence: Confidence in [0, 1] for added observations
    """
    _t0 = time.perf_counter()
    try:
        params = ObservationParams(
            action=action,
            memory_id=memory_id,
            contents=contents or [],
            observation_ids=observation_ids,
            source=source,
            confidence=confidence,
        )
    except ValidationError as e:
        return _inject_latency({"success": False, "error": str(e)}, _t0)

    service = _service(ctx)
    if params.action == "add":
        result = await service.add_observations(
            params.memory_id, params.contents, source=params.source, confidence=params.confidence
        )
    else:
        result = await service.delete_observations(params.memory_id, params.observation_ids)
    return _inject_latency(result, _t0)


# =============================================================================
# KNOWLEDGE GRAPH RELATIONSHIP OPERATIONS
# =============================================================================


@mcp.tool()
async def relation(
    action: str,
    memory_id: str,
    ctx: Context,
    target_id: str | None = None,
    relation_type: str | None = None,
    strength: float | None = None,
    context: str | list[str] | None = None,
    source: str | None = None,
) -> dict[str, Any]:
    """Manage typed relationships between memories.

    Args:
        action: Operation to perform:
            - "create": Create an edge (requires target_id and relation_type). Idempotent.
            - "get": List edges touching a memory (optional relation_type filter)
            - "delete": Remove an edge (requires target_id and relation_type)
        memory_id: Source memory (or the memory to list edges for)
        target_id: Related memory (required for create/delete)
        relation_type: Free-form label, e.g. "depends_on"
        strength: Edge strength in [0, 1] (create only)
        context: Short context notes (create only)
        source: Provenance (create only)
    """
    _t0 = time.perf_counter()
    try:
        params = RelationParams(
            action=action,
            memory_id=memory_id,
            target_id=target_id,
            relation_type=relation_type,
            strength=strength,
            context=context,
            source=source,
        )
    except ValidationError as e:
        return _inject_latency({"success": False, "error": str(e)}, _t0)

    service = _service(ctx)
    if params.action == "create":
        result = await service.create_relation(
            from_id=params.memory_id,
            to_id=params.target_id,
            relation_type=params.relation_type,
            strength=params.strength,
            context=params.context or None,
            source=params.source,
        )
    elif params.action == "get":
        result = await service.get_relations(params.memory_id, params.relation_type)
    else:  # delete
        result = await service.delete_relation(params.memory_id, params.target_id, params.relation_type)
    return _inject_latency(result, _t0)


@mcp.tool()
async def graph_stats(ctx: Context) -> dict[str, Any]:
    """Check graph connectivity and report memory, observation, tag and relation counts."""
    _t0 = time.perf_counter()
    return _inject_latency(await _service(ctx).check_database_health(), _t0)


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================


def main():
    """Main entry point for the MCP server."""
    server = settings.server
    logging.basicConfig(level=getattr(logging, server.log_level.upper(), logging.INFO))

    if server.transport == "stdio":
        mcp.run(transport="stdio")
    else:
        logger.info(f"Starting MCP Memory Graph on {server.host}:{server.port}")
        mcp.run(transport="http", host=server.host, port=server.port, stateless_http=True)


if __name__ == "__main__":
    main()
