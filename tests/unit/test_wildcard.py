"""
Unit tests for the wildcard responder.
"""

import pytest

from fakes import FakeGraph
from mcp_memory_graph.search.wildcard import WildcardResponder


@pytest.fixture
def tree():
    """
    Alpha -> Child -> Grandchild -> Deep
    Beta
    """
    graph = FakeGraph()
    graph.add_memory("a", "Alpha", memory_type="project")
    graph.add_memory("b", "Beta", memory_type="person")
    graph.add_memory("c", "Child", memory_type="project", observations=["not loaded"])
    graph.add_memory("g", "Grandchild")
    graph.add_memory("d", "Deep")
    graph.relate("a", "c", "contains")
    graph.relate("c", "g", "contains")
    graph.relate("g", "d", "contains")
    return graph


@pytest.mark.asyncio
async def test_roots_come_first_ordered_by_name(tree):
    records = await WildcardResponder(tree, target_total=20).summarize()
    assert [r.id for r in records[:2]] == ["a", "b"]


@pytest.mark.asyncio
async def test_expands_two_levels_below_roots(tree):
    records = await WildcardResponder(tree, target_total=20).summarize()
    assert [r.id for r in records] == ["a", "b", "c", "g"]


@pytest.mark.asyncio
async def test_children_summaries_attached(tree):
    records = {r.id: r for r in await WildcardResponder(tree, target_total=20).summarize()}
    assert [(c.id, c.name) for c in records["a"].children] == [("c", "Child")]
    assert records["b"].children == []
    # The last expanded level still lists its own children
    assert [c.id for c in records["g"].children] == ["d"]


@pytest.mark.asyncio
async def test_observations_not_loaded(tree):
    records = {r.id: r for r in await WildcardResponder(tree, target_total=20).summarize()}
    assert records["c"].observations == []


@pytest.mark.asyncio
async def test_limit_caps_total(tree):
    records = await WildcardResponder(tree, target_total=20).summarize(limit=3)
    assert [r.id for r in records] == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_no_expansion_when_roots_fill_target(tree):
    records = await WildcardResponder(tree, target_total=2).summarize()
    assert [r.id for r in records] == ["a", "b"]
    assert len(tree.statements_containing("UNWIND $ids AS parentId")) == 1


@pytest.mark.asyncio
async def test_all_cycle_graph_falls_back_to_listing():
    graph = FakeGraph()
    graph.add_memory("x", "X")
    graph.add_memory("y", "Y")
    graph.relate("x", "y")
    graph.relate("y", "x")
    records = await WildcardResponder(graph, target_total=20).summarize()
    assert [r.id for r in records] == ["x", "y"]
    assert graph.statements_containing("WHERE m.id IS NOT NULL")


@pytest.mark.asyncio
async def test_memory_type_filter(tree):
    records = await WildcardResponder(tree, target_total=20).summarize(memory_types=["project"])
    assert [r.id for r in records] == ["a", "c"]


@pytest.mark.asyncio
async def test_empty_graph():
    assert await WildcardResponder(FakeGraph(), target_total=20).summarize() == []
