"""The read interface every search component depends on."""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class GraphStore(Protocol):
    """Anything that can run a parameterized Cypher statement.

    Rows come back as dicts keyed by the statement's RETURN aliases.
    """

    async def run_query(self, query: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]: ...
