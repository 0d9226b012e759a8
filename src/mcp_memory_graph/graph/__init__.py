"""
Graph layer for MCP Memory Graph.

FalkorDB-backed storage for memories, observations, tags and typed
RELATES_TO relations. Search components depend only on GraphStore.
"""

from .client import GraphClient
from .store import GraphStore
from .values import to_plain_int

__all__ = [
    "GraphClient",
    "GraphStore",
    "to_plain_int",
]
