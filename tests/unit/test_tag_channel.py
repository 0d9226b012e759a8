"""
Unit tests for the tag channel: substring matching without vector support,
embedding similarity with it.
"""

import pytest

from fakes import FakeGraph
from mcp_memory_graph.models.search import VectorCapability
from mcp_memory_graph.search.tag_channel import TagChannel, query_words


def _seed(graph: FakeGraph, embedder) -> FakeGraph:
    tags = lambda *names: {name: embedder.vector(name) for name in names}  # noqa: E731
    graph.add_memory("m1", "Rex", tags=tags("dog", "pet"))
    graph.add_memory("m2", "Sedan", tags=tags("car", "vehicle"))
    graph.add_memory("m3", "Kennel club", tags=tags("dogs", "club"))
    graph.add_memory("m4", "Whiskers", "pet", tags=tags("cat"))
    return graph


class TestQueryWords:
    def test_short_words_dropped(self):
        assert query_words("a dog is ok") == ["dog"]

    def test_deduplicated_and_lowercased(self):
        assert query_words("Dog dog DOG") == ["dog"]


class TestSubstringMode:
    @pytest.mark.asyncio
    async def test_matches_tags_containing_query_words(self, embedder):
        graph = _seed(FakeGraph(capability="none"), embedder)
        result = await TagChannel(graph, embedder).search("dog", 10, None, VectorCapability.NONE)

        assert result.semantic is False
        assert [hit.memory_id for hit in result.hits] == ["m3", "m1"]  # "dogs" contains "dog"; name order

    @pytest.mark.asyncio
    async def test_ranked_by_number_of_matching_tags(self, embedder):
        graph = _seed(FakeGraph(capability="none"), embedder)
        result = await TagChannel(graph, embedder).search("dog pet", 10, None, VectorCapability.NONE)
        assert result.hits[0].memory_id == "m1"
        assert result.hits[0].score == 2.0

    @pytest.mark.asyncio
    async def test_short_query_yields_nothing(self, embedder):
        graph = _seed(FakeGraph(capability="none"), embedder)
        result = await TagChannel(graph, embedder).search("ox", 10, None, VectorCapability.NONE)
        assert result.hits == []
        assert not graph.statements_containing("any(word IN $words")

    @pytest.mark.asyncio
    async def test_no_embedding_needed(self, embedder):
        graph = _seed(FakeGraph(capability="none"), embedder)
        await TagChannel(graph, embedder).search("dog", 10, None, VectorCapability.NONE)
        assert embedder.calls == []


class TestSemanticMode:
    @pytest.mark.asyncio
    async def test_best_tag_similarity_above_threshold(self, embedder):
        graph = _seed(FakeGraph(capability="full"), embedder)
        result = await TagChannel(graph, embedder).search("animal", 10, None, VectorCapability.FULL)

        assert result.semantic is True
        ids = [hit.memory_id for hit in result.hits]
        assert set(ids) == {"m1", "m4"}
        assert "m2" not in ids
        assert all(hit.score >= 0.6 for hit in result.hits)

    @pytest.mark.asyncio
    async def test_threshold_is_configurable(self, embedder):
        graph = _seed(FakeGraph(capability="full"), embedder)
        result = await TagChannel(graph, embedder, similarity_threshold=0.999).search(
            "animal", 10, None, VectorCapability.FULL
        )
        assert result.hits == []

    @pytest.mark.asyncio
    async def test_memory_type_filter(self, embedder):
        graph = _seed(FakeGraph(capability="full"), embedder)
        result = await TagChannel(graph, embedder).search("animal", 10, ["pet"], VectorCapability.FULL)
        assert [hit.memory_id for hit in result.hits] == ["m4"]
