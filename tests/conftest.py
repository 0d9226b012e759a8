import os
import sys

import pytest

# Force CPU-only mode for tests (avoids CUDA compatibility issues)
os.environ["CUDA_VISIBLE_DEVICES"] = ""

# Capability cache resets are only honoured in diagnostic mode
os.environ.setdefault("MCP_DEBUG_DIAGNOSTIC_MODE", "true")

# Add src directory to Python path, and this directory for the shared fakes
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(__file__)), "src"))
sys.path.insert(0, os.path.dirname(__file__))

from fakes import ConceptEmbedder, FakeGraph  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_capability_cache():
    """Every test probes the vector capability of its own fake backend."""
    from mcp_memory_graph.search.capability import capability_cache

    capability_cache.reset()
    yield
    capability_cache.reset()


@pytest.fixture
def embedder():
    return ConceptEmbedder()


@pytest.fixture
def graph():
    return FakeGraph(capability="none")


@pytest.fixture
def vector_graph():
    return FakeGraph(capability="full")
