"""Unit tests for keyword tag extraction."""

from mcp_memory_graph.utils.tag_extraction import MAX_TAGS, extract_tags


def test_single_word_name():
    assert extract_tags("Dog") == ["dog"]


def test_technical_terms_rank_first():
    tags = extract_tags("Migrate FalkorDB schema", ["Use snake_case_name for ids"])
    assert tags == ["falkordb", "snake_case_name", "migrate", "schema", "ids"]


def test_stop_words_dropped():
    assert extract_tags("The and of", ["it is what it is"]) == []


def test_existing_tags_kept_first():
    tags = extract_tags("Dog", existing_tags=["Pets", "pets", " "])
    assert tags == ["pets", "dog"]


def test_bounded():
    name = "alpha bravo charlie delta echo foxtrot golf hotel india juliet"
    assert len(extract_tags(name)) == MAX_TAGS
    assert len(extract_tags(name, max_tags=2)) == 2


def test_plural_duplicates_skipped():
    assert extract_tags("dogs", ["dog"]) == ["dogs"]


def test_gerunds_skipped():
    assert extract_tags("Running tests") == ["tests"]


def test_lower_case():
    assert all(tag == tag.lower() for tag in extract_tags("Kubernetes Deployment", ["HELM Chart"]))
