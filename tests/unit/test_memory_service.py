"""
Unit tests for MemoryService.

A real GraphClient runs on top of FakeGraph, so the Cypher issued by the
client is exercised end to end without a database.
"""

import pytest

from fakes import ConceptEmbedder, FakeGraph
from mcp_memory_graph.graph.client import GraphClient
from mcp_memory_graph.services.memory_service import MemoryService


def make_client(fake: FakeGraph) -> GraphClient:
    client = GraphClient.__new__(GraphClient)
    client.graph_name = "test_graph"
    client._graph = fake
    client._initialized = True
    return client


@pytest.fixture
def fake():
    return FakeGraph()


@pytest.fixture
def service(fake, embedder):
    return MemoryService(make_client(fake), embedder)


class TestStoreMemory:
    @pytest.mark.asyncio
    async def test_store_embeds_name_and_tags(self, service, fake, embedder):
        result = await service.store_memory("Dog", "animal", observations=["barks loudly"], metadata={"age": 3})

        assert result["success"] is True
        memory = fake.memories[result["memory_id"]]
        assert memory["nameEmbedding"] == embedder.vector("Dog")
        assert memory["metadata"] == '{"age": 3}'
        assert [o["content"] for o in fake.observations[result["memory_id"]]] == ["barks loudly"]
        assert "dog" in result["tags"]
        assert fake.tag_embeddings["dog"] == embedder.vector("dog")

    @pytest.mark.asyncio
    async def test_caller_tags_first(self, service):
        result = await service.store_memory("Dog", "animal", tags=["Pets"])
        assert result["tags"][0] == "pets"

    @pytest.mark.asyncio
    async def test_embedding_failure_is_not_fatal(self, fake):
        class BrokenEmbedder(ConceptEmbedder):
            async def embed(self, text):
                raise RuntimeError("model unavailable")

        result = await MemoryService(make_client(fake), BrokenEmbedder()).store_memory("Dog", "animal")
        assert result["success"] is True
        assert fake.memories[result["memory_id"]]["nameEmbedding"] is None

    @pytest.mark.asyncio
    async def test_graph_failure_reported(self, service, fake):
        fake.fail_on("CREATE (m:Memory", RuntimeError("read-only replica"))
        result = await service.store_memory("Dog", "animal")
        assert result["success"] is False
        assert "read-only replica" in result["error"]

    @pytest.mark.asyncio
    async def test_observation_failure_removes_new_memory(self, service, fake):
        fake.fail_on("UNWIND $observations AS obs", RuntimeError("connection dropped"))
        result = await service.store_memory("Dog", "animal", observations=["barks"])

        assert result["success"] is False
        assert "connection dropped" in result["error"]
        assert fake.memories == {}

    @pytest.mark.asyncio
    async def test_tag_failure_removes_new_memory(self, service, fake):
        fake.fail_on("UNWIND $tags AS tag", RuntimeError("connection dropped"))
        result = await service.store_memory("Dog", "animal", observations=["barks"])

        assert result["success"] is False
        assert fake.memories == {}
        assert fake.edges == []

    @pytest.mark.asyncio
    async def test_failed_cleanup_still_reports_original_error(self, service, fake):
        fake.fail_on("UNWIND $observations AS obs", RuntimeError("connection dropped"))
        fake.fail_on("DETACH DELETE", RuntimeError("still down"))
        result = await service.store_memory("Dog", "animal", observations=["barks"])

        assert result["success"] is False
        assert "connection dropped" in result["error"]


class TestGetUpdateDelete:
    @pytest.mark.asyncio
    async def test_get(self, service):
        stored = await service.store_memory("Dog", "animal", metadata={"age": 3})
        result = await service.get_memory(stored["memory_id"])
        assert result["found"] is True
        assert result["memory"]["name"] == "Dog"
        assert result["memory"]["metadata"] == {"age": 3}
        assert "children" not in result["memory"]

    @pytest.mark.asyncio
    async def test_get_missing(self, service):
        assert await service.get_memory("nope") == {"found": False, "memory_id": "nope"}

    @pytest.mark.asyncio
    async def test_rename_reembeds_and_retags(self, service, fake, embedder):
        stored = await service.store_memory("Dog", "animal")
        result = await service.update_memory(stored["memory_id"], name="Truck")

        assert result == {"success": True, "memory_id": stored["memory_id"], "updated": ["name"]}
        memory = fake.memories[stored["memory_id"]]
        assert memory["name"] == "Truck"
        assert memory["nameEmbedding"] == embedder.vector("Truck")
        assert fake.memory_tags[stored["memory_id"]] == ["truck"]

    @pytest.mark.asyncio
    async def test_explicit_tags_replace(self, service, fake):
        stored = await service.store_memory("Dog", "animal")
        await service.update_memory(stored["memory_id"], tags=["Pets", "pets", "good-boy"])
        assert fake.memory_tags[stored["memory_id"]] == ["pets", "good-boy"]

    @pytest.mark.asyncio
    async def test_update_missing(self, service):
        result = await service.update_memory("nope", name="x")
        assert result["success"] is False
        assert result["error"] == "Memory not found"

    @pytest.mark.asyncio
    async def test_delete(self, service, fake):
        stored = await service.store_memory("Dog", "animal")
        assert (await service.delete_memory(stored["memory_id"]))["success"] is True
        assert stored["memory_id"] not in fake.memories
        assert (await service.delete_memory(stored["memory_id"]))["success"] is False


class TestObservations:
    @pytest.mark.asyncio
    async def test_add_folds_keywords_into_tags(self, service, fake):
        stored = await service.store_memory("Dog", "animal")
        result = await service.add_observations(stored["memory_id"], ["Chases the postman"], confidence=0.8)

        assert result["success"] is True
        assert len(result["observation_ids"]) == 1
        observation = fake.observations[stored["memory_id"]][0]
        assert observation["confidence"] == 0.8
        assert "postman" in fake.memory_tags[stored["memory_id"]]

    @pytest.mark.asyncio
    async def test_add_to_missing_memory(self, service):
        result = await service.add_observations("nope", ["x"])
        assert result["success"] is False

    @pytest.mark.asyncio
    async def test_delete(self, service, fake):
        stored = await service.store_memory("Dog", "animal", observations=["barks", "sleeps"])
        first = fake.observations[stored["memory_id"]][0]["id"]
        result = await service.delete_observations(stored["memory_id"], [first])
        assert result["deleted"] == 1
        assert [o["content"] for o in fake.observations[stored["memory_id"]]] == ["sleeps"]


class TestRelations:
    @pytest.fixture
    def pair(self, fake):
        fake.add_memory("a", "A")
        fake.add_memory("b", "B")

    @pytest.mark.asyncio
    async def test_create_is_idempotent(self, service, fake, pair):
        first = await service.create_relation("a", "b", "depends_on", strength=0.4)
        second = await service.create_relation("a", "b", "depends_on")
        assert first["success"] and second["success"]
        assert len(fake.edges) == 1

    @pytest.mark.asyncio
    async def test_self_relation_rejected(self, service, pair):
        result = await service.create_relation("a", "a", "depends_on")
        assert result["success"] is False

    @pytest.mark.asyncio
    async def test_missing_endpoint(self, service, pair):
        result = await service.create_relation("a", "ghost", "depends_on")
        assert result["error"] == "Source or target memory not found"

    @pytest.mark.asyncio
    async def test_get_and_delete(self, service, pair):
        await service.create_relation("a", "b", "depends_on", context=["sprint 3"])
        listed = await service.get_relations("a")
        assert listed["count"] == 1
        assert listed["relations"][0]["context"] == ["sprint 3"]

        assert (await service.delete_relation("a", "b", "depends_on"))["success"] is True
        assert (await service.delete_relation("a", "b", "depends_on"))["error"] == "Relation not found"


class TestSearch:
    @pytest.mark.asyncio
    async def test_search_response_shape(self, service):
        await service.store_memory("Dog", "animal")
        await service.store_memory("Car", "vehicle")

        result = await service.search("animal")
        assert result["success"] is True
        assert result["intent"] == "semantic_search"
        assert result["count"] == len(result["memories"]) == 1
        memory = result["memories"][0]
        assert memory["name"] == "Dog"
        assert memory["match_type"] == "semantic"
        assert "related" not in memory

    @pytest.mark.asyncio
    async def test_empty_query_is_an_error(self, service):
        result = await service.search("  ")
        assert result["success"] is False
        assert result["query"] == "  "

    @pytest.mark.asyncio
    async def test_bad_limit_is_an_error(self, service):
        assert (await service.search("dog", limit=0))["success"] is False

    @pytest.mark.asyncio
    async def test_pipeline_failure_is_an_error(self, service, fake):
        await service.store_memory("Dog", "animal")
        fake.fail_on("SET m.lastAccessed", RuntimeError("lost connection"))
        result = await service.search("animal")
        assert result["success"] is False
        assert "lost connection" in result["error"]

    @pytest.mark.asyncio
    async def test_non_numeric_threshold_is_an_error(self, service):
        result = await service.search("dog", threshold="0.5")
        assert result["success"] is False
        assert "threshold must be a number" in result["error"]

    @pytest.mark.asyncio
    async def test_children_only_listed_when_present(self, service, fake):
        fake.add_memory("apollo", "Apollo", memory_type="project")
        fake.add_memory("saturn", "Saturn V", memory_type="rocket")
        fake.add_memory("gemini", "Gemini", memory_type="project")
        fake.relate("apollo", "saturn", "uses")

        overview = {m["id"]: m for m in (await service.search("*"))["memories"]}
        assert [c["id"] for c in overview["apollo"]["children"]] == ["saturn"]
        assert "children" not in overview["gemini"]

        found = (await service.search("Gemini"))["memories"]
        assert found[0]["id"] == "gemini"
        assert "children" not in found[0]


class TestFind:
    @pytest.fixture
    async def stored(self, service):
        dog = (await service.store_memory("Dog", "animal", observations=["barks"]))["memory_id"]
        car = (await service.store_memory("Car", "vehicle"))["memory_id"]
        await service.create_relation(dog, car, "chases")
        return {"dog": dog, "car": car}

    @pytest.mark.asyncio
    async def test_id_list_loads_memories_in_order(self, service, stored):
        result = await service.find([stored["car"], stored["dog"]])
        assert result["success"] is True
        assert result["operation"] == "retrieve"
        assert "intent" not in result
        assert [m["name"] for m in result["memories"]] == ["Car", "Dog"]
        assert result["memories"][1]["observations"][0]["content"] == "barks"
        assert "score" not in result["memories"][0]

    @pytest.mark.asyncio
    async def test_json_array_string_is_an_id_list(self, service, stored):
        result = await service.find(f'["{stored["dog"]}"]')
        assert result["operation"] == "retrieve"
        assert [m["name"] for m in result["memories"]] == ["Dog"]

    @pytest.mark.asyncio
    async def test_bracketed_text_is_still_a_search(self, service, stored):
        result = await service.find("[dog")
        assert result["operation"] == "search"

    @pytest.mark.asyncio
    async def test_minimal_context_level(self, service, fake, stored):
        result = await service.find("animal", context_level="minimal")
        assert result["context_level"] == "minimal"
        assert set(result["memories"][0]) == {"id", "name", "memory_type", "score"}
        assert not fake.statements_containing("UNWIND $ids AS targetId")

    @pytest.mark.asyncio
    async def test_relations_only_context_level(self, service, stored):
        result = await service.find([stored["dog"]], context_level="relations-only")
        memory = result["memories"][0]
        assert set(memory) == {"id", "name", "memory_type", "related"}
        assert [d["name"] for d in memory["related"]["descendants"]] == ["Car"]

    @pytest.mark.asyncio
    async def test_invalid_context_level(self, service):
        result = await service.find("dog", context_level="everything")
        assert result["success"] is False
        assert "context level" in result["error"]

    @pytest.mark.asyncio
    async def test_traversal(self, service, stored):
        result = await service.find("", traverse_from=stored["dog"], traverse_direction="outbound")
        assert result["success"] is True
        assert result["operation"] == "traverse"
        memory = result["memories"][0]
        assert memory["name"] == "Car"
        assert memory["related"]["ancestors"][0]["id"] == stored["dog"]
        assert memory["related"]["ancestors"][0]["relation_type"] == "chases"

    @pytest.mark.asyncio
    async def test_traversal_options_need_a_start(self, service):
        result = await service.find("dog", max_depth=2)
        assert result["success"] is False
        assert "traverse_from is required" in result["error"]

    @pytest.mark.asyncio
    async def test_date_filters(self, service, stored):
        assert (await service.find("*", created_before="2000-01-01"))["count"] == 0
        assert (await service.find("*", created_after="1d"))["count"] > 0
        assert (await service.find([stored["dog"]], modified_since="2000-01-01"))["count"] == 1

    @pytest.mark.asyncio
    async def test_invalid_date_is_an_error(self, service):
        result = await service.find("dog", accessed_since="last week")
        assert result["success"] is False
        assert "Invalid accessed_since" in result["error"]

    @pytest.mark.asyncio
    async def test_invalid_order_is_an_error(self, service):
        assert (await service.find("dog", order_by="oldest"))["success"] is False


class TestStoreBatch:
    @pytest.mark.asyncio
    async def test_local_ids_resolve_in_relations(self, service, fake):
        fake.add_memory("existing", "Existing")
        result = await service.store_batch(
            [
                {"name": "Apollo", "memory_type": "project", "local_id": "apollo"},
                {"name": "Saturn V", "memory_type": "rocket", "local_id": "saturn", "observations": ["three stages"]},
            ],
            [
                {"from_id": "apollo", "to_id": "saturn", "relation_type": "uses", "strength": 0.9},
                {"from_id": "existing", "to_id": "apollo", "relation_type": "mentions"},
            ],
        )
        assert result["success"] is True
        assert len(result["created"]) == 2
        apollo, saturn = result["local_id_map"]["apollo"], result["local_id_map"]["saturn"]
        assert result["created"] == [apollo, saturn]
        assert [(c["from_id"], c["to_id"]) for c in result["connected"]] == [(apollo, saturn), ("existing", apollo)]
        assert {(e.from_id, e.to_id, e.relation_type) for e in fake.edges} == {
            (apollo, saturn, "uses"),
            ("existing", apollo, "mentions"),
        }
        assert [o["content"] for o in fake.observations[saturn]] == ["three stages"]

    @pytest.mark.asyncio
    async def test_unknown_relation_target_rolls_back(self, service, fake):
        result = await service.store_batch(
            [{"name": "Apollo", "memory_type": "project", "local_id": "apollo"}],
            [{"from_id": "apollo", "to_id": "nowhere", "relation_type": "uses"}],
        )
        assert result["success"] is False
        assert result["created"] == []
        assert "not found" in result["error"]
        assert fake.memories == {}

    @pytest.mark.asyncio
    async def test_write_failure_rolls_back_earlier_memories(self, service, fake):
        fake.fail_on("UNWIND $observations AS obs", RuntimeError("connection dropped"))
        result = await service.store_batch(
            [
                {"name": "Apollo", "memory_type": "project"},
                {"name": "Saturn V", "memory_type": "rocket", "observations": ["three stages"]},
            ]
        )
        assert result["success"] is False
        assert "connection dropped" in result["error"]
        assert fake.memories == {}

    @pytest.mark.asyncio
    async def test_duplicate_local_id_rejected(self, service, fake):
        result = await service.store_batch(
            [
                {"name": "Apollo", "memory_type": "project", "local_id": "x"},
                {"name": "Gemini", "memory_type": "project", "local_id": "x"},
            ]
        )
        assert result["success"] is False
        assert "Duplicate local_id" in result["error"]
        assert fake.queries == []

    @pytest.mark.asyncio
    async def test_empty_batch_rejected(self, service):
        result = await service.store_batch([])
        assert result == {"success": False, "created": [], "connected": [], "error": "memories cannot be empty"}


@pytest.mark.asyncio
async def test_health(service):
    result = await service.check_database_health()
    assert result["status"] == "healthy"
    assert result["graph"]["graph_name"] == "test_graph"
