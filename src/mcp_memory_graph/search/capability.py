"""
Vector capability detection.

Probes the backend once per process for a generic similarity library and
then for native vector functions. Probes are constant-only RETURN
statements, so they are safe on any graph, and a probe that raises simply
means the facility is absent.
"""

import logging

from ..config import settings
from ..errors import CapabilityProbeFailure
from ..graph.store import GraphStore
from ..models.search import VectorCapability

logger = logging.getLogger(__name__)

APPROXIMATE_PROBE = "RETURN gds.similarity.cosine([1.0, 0.0], [1.0, 0.0]) AS similarity"
FULL_PROBE = "RETURN vec.cosineDistance(vecf32([1.0, 0.0]), vecf32([1.0, 0.0])) AS distance"


class CapabilityCache:
    """Process-wide holder for the detected capability.

    Concurrent first callers may each run the probes; the first value
    stored wins and later stores are ignored.
    """

    def __init__(self) -> None:
        self._value: VectorCapability | None = None

    def get(self) -> VectorCapability | None:
        return self._value

    def store(self, capability: VectorCapability) -> VectorCapability:
        if self._value is None:
            self._value = capability
        return self._value

    def reset(self) -> None:
        self._value = None


capability_cache = CapabilityCache()


async def _probe(store: GraphStore, statement: str, label: str, column: str, expected: float) -> bool:
    try:
        rows = await store.run_query(statement)
        value = rows[0].get(column) if rows else None
        if value is None or abs(float(value) - expected) > 1e-3:
            raise CapabilityProbeFailure(f"{label} returned {value!r}, expected {expected}")
    except Exception as e:
        logger.debug(f"Capability probe {label} unavailable: {e}")
        return False
    return True


async def detect_capability(store: GraphStore, cache: CapabilityCache | None = None) -> VectorCapability:
    """Return the cached capability, probing the backend on first use."""
    cache = cache or capability_cache
    cached = cache.get()
    if cached is not None:
        return cached

    if await _probe(store, APPROXIMATE_PROBE, "gds.similarity", "similarity", 1.0):
        detected = VectorCapability.APPROXIMATE
    elif await _probe(store, FULL_PROBE, "vec.cosineDistance", "distance", 0.0):
        detected = VectorCapability.FULL
    else:
        detected = VectorCapability.NONE

    result = cache.store(detected)
    logger.info(f"Vector capability detected: {result.value}")
    return result


def reset_capability_cache(cache: CapabilityCache | None = None) -> bool:
    """Clear the cached capability. Only honoured in diagnostic mode.

    Returns:
        True if the cache was cleared
    """
    if not settings.debug.diagnostic_mode:
        logger.warning("Capability cache reset ignored: MCP_DEBUG_DIAGNOSTIC_MODE is off")
        return False
    (cache or capability_cache).reset()
    return True
