"""
Unit tests for the exact/fulltext metadata channel.
"""

import pytest

from fakes import FakeGraph
from mcp_memory_graph.errors import ChannelFailure
from mcp_memory_graph.graph.values import dump_metadata
from mcp_memory_graph.search.exact_channel import ExactChannel, sanitize_fulltext_query


@pytest.fixture
def seeded():
    graph = FakeGraph()
    graph.add_memory("m1", "Project Alpha", "project", metadata='{"status": "active", "due": "2024-01-15"}')
    graph.add_memory("m2", "Alpha release notes", "doc", observations=["Shipped the alpha build"])
    graph.add_memory("m3", "42", "number")
    graph.add_memory("m4", "Budget", "doc", observations=["Deadline is 2024-01-15"])
    return graph


class TestSanitizeFulltextQuery:
    def test_plain_terms_are_or_joined(self):
        assert sanitize_fulltext_query("project alpha") == "project | alpha"

    def test_special_characters_escaped(self):
        assert sanitize_fulltext_query("2024-01-15") == "2024\\-01\\-15"
        assert sanitize_fulltext_query("a(b)") == "a\\(b\\)"

    def test_operator_words_dropped(self):
        assert sanitize_fulltext_query("cats and dogs") == "cats | dogs"

    def test_empty(self):
        assert sanitize_fulltext_query("   ") == ""


class TestExactChannel:
    @pytest.mark.asyncio
    async def test_name_equality_is_case_insensitive(self, seeded):
        matches = await ExactChannel(seeded).search("project alpha", limit=10)
        assert matches.exact_ids == ["m1"]

    @pytest.mark.asyncio
    async def test_metadata_containment(self, seeded):
        matches = await ExactChannel(seeded).search("2024-01-15", limit=10)
        assert matches.exact_ids == ["m1"]

    @pytest.mark.asyncio
    async def test_fulltext_covers_names_and_observations(self, seeded):
        matches = await ExactChannel(seeded).search("2024-01-15", limit=10)
        assert set(matches.fulltext_ids) == {"m1", "m4"}

    @pytest.mark.asyncio
    async def test_missing_fulltext_index_degrades_to_exact_only(self, seeded):
        seeded.fulltext = False
        matches = await ExactChannel(seeded).search("project alpha", limit=10)
        assert matches.exact_ids == ["m1"]
        assert matches.fulltext_ids == []

    @pytest.mark.asyncio
    async def test_memory_type_filter(self, seeded):
        matches = await ExactChannel(seeded).search("alpha", limit=10, memory_types=["doc"])
        assert matches.exact_ids == []
        assert matches.fulltext_ids == ["m2"]

    @pytest.mark.asyncio
    async def test_limit(self, seeded):
        matches = await ExactChannel(seeded).search("alpha", limit=1)
        assert len(matches.fulltext_ids) == 1

    @pytest.mark.asyncio
    async def test_exact_query_failure_is_a_channel_failure(self, seeded):
        seeded.fail_on("toLower(m.name)", RuntimeError("graph unavailable"))
        with pytest.raises(ChannelFailure, match="exact"):
            await ExactChannel(seeded).search("42", limit=10)

    @pytest.mark.asyncio
    async def test_non_ascii_metadata_is_matchable(self):
        graph = FakeGraph()
        graph.add_memory("m1", "Office", "place", metadata=dump_metadata({"city": "Zürich", "branch": "東京"}))
        channel = ExactChannel(graph)

        assert (await channel.search("zürich", limit=10)).exact_ids == ["m1"]
        assert (await channel.search("東京", limit=10)).fulltext_ids == ["m1"]
