"""
Graph schema for the memory knowledge graph.

Node Labels:
    :Memory       - A typed memory, keyed by id. Carries name, memoryType,
                    metadata (JSON string), timestamps and nameEmbedding.
    :Observation  - A piece of content attached to one memory.
    :Tag          - A shared keyword, keyed by name, with an embedding.

Relationship Types:
    :HAS_OBSERVATION - Memory -> Observation
    :HAS_TAG         - Memory -> Tag
    :RELATES_TO      - Memory -> Memory, typed by the relationType property.
                       (from, to, relationType) is unique.

Statements are applied idempotently on startup.
"""

SCHEMA_STATEMENTS: list[str] = [
    "CREATE INDEX IF NOT EXISTS FOR (m:Memory) ON (m.id)",
    "CREATE INDEX IF NOT EXISTS FOR (m:Memory) ON (m.memoryType)",
    "CREATE INDEX IF NOT EXISTS FOR (m:Memory) ON (m.name)",
    "CREATE INDEX IF NOT EXISTS FOR (o:Observation) ON (o.id)",
    "CREATE INDEX IF NOT EXISTS FOR (t:Tag) ON (t.name)",
]

# Fulltext indexes use the procedure API; re-running them raises "already indexed".
FULLTEXT_STATEMENTS: list[str] = [
    "CALL db.idx.fulltext.createNodeIndex('Memory', 'name', 'metadata')",
    "CALL db.idx.fulltext.createNodeIndex('Observation', 'content')",
]
