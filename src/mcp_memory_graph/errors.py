"""
Error taxonomy for the memory graph.

Only InvalidArgument and PipelineFailure ever reach a search caller.
ChannelFailure and EnrichmentFailure are raised inside the pipeline and
downgraded to empty contributions; CapabilityProbeFailure resolves to a
weaker vector capability.
"""


class MemoryGraphError(Exception):
    """Base class for all memory graph errors."""


class InvalidArgument(MemoryGraphError, ValueError):
    """A caller supplied an out-of-range limit, threshold or similar."""


class InvalidQuery(InvalidArgument):
    """The query is not a string, or is empty where a query is required."""


class ChannelFailure(MemoryGraphError):
    """A single search channel could not produce results."""

    def __init__(self, channel: str, message: str):
        self.channel = channel
        super().__init__(f"{channel} channel failed: {message}")


class CapabilityProbeFailure(MemoryGraphError):
    """A vector capability probe raised."""


class EnrichmentFailure(MemoryGraphError):
    """Graph context could not be loaded for a result set."""


class PipelineFailure(MemoryGraphError):
    """Aggregation, materialization or scoring failed; the search cannot answer."""
