"""
Value adapters for data crossing the graph storage boundary.

Drivers hand back integers in several shapes: plain ints, floats from
arithmetic, numeric strings, and the 64-bit {low, high} pair some Bolt
drivers use. Everything that leaves the storage layer goes through
to_plain_int / to_plain_float so the rest of the code sees native numbers.
"""

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)


def to_plain_int(value: Any, default: int | None = None) -> int | None:
    """Convert a driver integer representation into a Python int."""
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, dict) and "low" in value and "high" in value:
        low = int(value["low"]) & 0xFFFFFFFF
        high = int(value["high"])
        return (high << 32) | low
    to_number = getattr(value, "to_number", None) or getattr(value, "toNumber", None)
    if callable(to_number):
        return int(to_number())
    try:
        return int(str(value))
    except (TypeError, ValueError):
        logger.debug(f"Cannot interpret {value!r} as an integer")
        return default


def to_plain_float(value: Any, default: float | None = None) -> float | None:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def parse_metadata(raw: Any) -> dict[str, Any]:
    """Decode the metadata blob stored on a Memory node.

    Metadata is persisted as a JSON string so it can be fulltext-indexed.
    A blob that is not valid JSON is kept under ``"text"`` instead of lost.
    """
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        decoded = json.loads(raw)
    except (TypeError, ValueError):
        return {"text": str(raw)}
    return decoded if isinstance(decoded, dict) else {"value": decoded}


def dump_metadata(metadata: dict[str, Any] | None) -> str:
    if not metadata:
        return ""
    return json.dumps(metadata, sort_keys=True, default=str, ensure_ascii=False)
