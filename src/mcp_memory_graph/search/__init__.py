"""
Multi-channel memory search.

Query classification, vector capability detection, the vector / exact /
tag channels, composite scoring, graph context and wildcard summaries,
plus date filters and graph traversal for direct lookups.
"""

from .capability import detect_capability, reset_capability_cache
from .classifier import classify
from .orchestrator import SearchOrchestrator

__all__ = [
    "SearchOrchestrator",
    "classify",
    "detect_capability",
    "reset_capability_cache",
]
