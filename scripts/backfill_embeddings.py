#!/usr/bin/env python3
"""
Backfill missing name and tag embeddings.

Memories written while the embedding model was unavailable have no
nameEmbedding and are invisible to the vector channel; tags without an
embedding are invisible to semantic tag matching. This script fills both.

Usage:
    # Preview what would be embedded
    python scripts/backfill_embeddings.py --dry-run

    # Backfill everything
    python scripts/backfill_embeddings.py --memories --tags
"""

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from mcp_memory_graph.embeddings import SentenceTransformerEmbedder  # noqa: E402
from mcp_memory_graph.graph.client import GraphClient  # noqa: E402
from mcp_memory_graph.graph.factory import create_graph_client  # noqa: E402

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


async def backfill_memories(
    graph_client: GraphClient,
    embedder: SentenceTransformerEmbedder,
    dry_run: bool = False,
    batch_size: int = 200,
) -> dict:
    """Embed the names of memories that have no nameEmbedding."""
    stats = {"embedded": 0, "failed": 0}
    failed_ids: set[str] = set()
    while True:
        rows = await graph_client.list_memories_missing_embeddings(limit=batch_size + len(failed_ids))
        rows = [row for row in rows if row["id"] not in failed_ids]
        if not rows:
            break
        if dry_run:
            logger.info(f"[dry-run] {len(rows)} memories without a name embedding (first batch)")
            stats["embedded"] = len(rows)
            break
        for row in rows[:batch_size]:
            try:
                embedding = await embedder.embed(row["name"] or "")
            except ValueError as e:
                logger.warning(f"Skipping memory {row['id']}: {e}")
                failed_ids.add(row["id"])
                stats["failed"] += 1
                continue
            await graph_client.update_memory(row["id"], {"name_embedding": embedding})
            stats["embedded"] += 1
        logger.info(f"Memories embedded so far: {stats['embedded']:,}")
    return stats


async def backfill_tags(
    graph_client: GraphClient,
    embedder: SentenceTransformerEmbedder,
    dry_run: bool = False,
    batch_size: int = 500,
) -> dict:
    """Embed tags that have no embedding."""
    names = await graph_client.list_tags_missing_embeddings(limit=batch_size)
    if dry_run:
        logger.info(f"[dry-run] {len(names)} tags without an embedding (first batch)")
        return {"embedded": len(names)}

    embedded = 0
    while names:
        for name in names:
            await graph_client.set_tag_embedding(name, await embedder.embed(name))
            embedded += 1
        names = await graph_client.list_tags_missing_embeddings(limit=batch_size)
    logger.info(f"Tags embedded: {embedded:,}")
    return {"embedded": embedded}


async def main():
    parser = argparse.ArgumentParser(description="Backfill missing memory and tag embeddings")
    parser.add_argument("--memories", action="store_true", help="Embed memory names")
    parser.add_argument("--tags", action="store_true", help="Embed tags")
    parser.add_argument("--dry-run", action="store_true", help="Preview without making changes")
    args = parser.parse_args()

    if not (args.memories or args.tags):
        args.memories = args.tags = True

    graph_client = await create_graph_client()
    embedder = SentenceTransformerEmbedder()

    try:
        start_time = time.time()
        if args.memories:
            memory_stats = await backfill_memories(graph_client, embedder, dry_run=args.dry_run)
            logger.info(f"Memories: {memory_stats}")
        if args.tags:
            tag_stats = await backfill_tags(graph_client, embedder, dry_run=args.dry_run)
            logger.info(f"Tags: {tag_stats}")
        logger.info(f"Backfill complete in {time.time() - start_time:.1f}s")
    finally:
        await graph_client.close()


if __name__ == "__main__":
    asyncio.run(main())
