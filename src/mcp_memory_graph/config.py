"""
Configuration for MCP Memory Graph.

Every section is a pydantic-settings model with its own environment prefix,
so deployments tune the service purely through environment variables:

    MCP_FALKORDB_*   graph database connection
    MCP_EMBEDDING_*  embedding model selection
    MCP_SEARCH_*     ranking weights, thresholds, graph context limits
    MCP_DEBUG_*      latency metrics and diagnostic switches
    MCP_LIMITS_*     batch write and traversal bounds
    MCP_SERVER_*     MCP transport and logging
"""

import logging
from typing import Literal, Self

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class FalkorDBSettings(BaseSettings):
    """FalkorDB connection settings."""

    model_config = SettingsConfigDict(env_prefix="MCP_FALKORDB_", extra="ignore")

    host: str = "localhost"
    port: int = Field(default=6379, ge=1, le=65535)
    password: SecretStr | None = None
    graph_name: str = "memory_graph"
    max_connections: int = Field(default=16, ge=1)


class EmbeddingSettings(BaseSettings):
    """Embedding model settings."""

    model_config = SettingsConfigDict(env_prefix="MCP_EMBEDDING_", extra="ignore")

    model_name: str = "all-MiniLM-L6-v2"
    device: str | None = Field(default=None, description="torch device; autodetected when unset")
    dimensions: int = Field(default=384, ge=1, description="Expected vector size, used before the model loads")


class SearchSettings(BaseSettings):
    """Ranking weights and limits for the multi-channel search engine."""

    model_config = SettingsConfigDict(env_prefix="MCP_SEARCH_", extra="ignore")

    weight_vector: float = Field(default=0.5, ge=0.0, le=1.0)
    weight_metadata_exact: float = Field(default=0.25, ge=0.0, le=1.0)
    weight_metadata_fulltext: float = Field(default=0.15, ge=0.0, le=1.0)
    weight_tags: float = Field(default=0.10, ge=0.0, le=1.0)

    default_limit: int = Field(default=10, ge=1, le=500)
    default_threshold: float = Field(default=0.1, ge=0.0, le=1.0)
    tag_similarity_threshold: float = Field(default=0.6, ge=0.0, le=1.0)

    max_graph_depth: int = Field(default=2, ge=1, le=5)
    max_related_items: int = Field(default=3, ge=0, le=50)
    wildcard_target_total: int = Field(default=20, ge=1)
    channel_fetch_multiplier: int = Field(default=2, ge=1, le=10)

    @model_validator(mode="after")
    def warn_on_unnormalized_weights(self) -> Self:
        total = self.weight_vector + self.weight_metadata_exact + self.weight_metadata_fulltext + self.weight_tags
        if abs(total - 1.0) > 1e-6:
            logger.warning(f"Search weights sum to {total:.3f}; composite scores are still clamped to [0, 1]")
        return self


class DebugSettings(BaseSettings):
    """Debug switches."""

    model_config = SettingsConfigDict(env_prefix="MCP_DEBUG_", extra="ignore")

    latency_metrics: bool = False
    diagnostic_mode: bool = Field(default=False, description="Allows cache resets and other test-only operations")


class LimitsSettings(BaseSettings):
    """Per-request bounds for batch writes and graph traversal."""

    model_config = SettingsConfigDict(env_prefix="MCP_LIMITS_", extra="ignore")

    max_memories_per_operation: int = Field(default=50, ge=1)
    max_relations_per_operation: int = Field(default=200, ge=0)
    max_traversal_depth: int = Field(default=5, ge=1, le=10)
    default_traversal_depth: int = Field(default=2, ge=1, le=10)


class ServerSettings(BaseSettings):
    """MCP server transport settings."""

    model_config = SettingsConfigDict(env_prefix="MCP_SERVER_", extra="ignore")

    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)
    transport: Literal["stdio", "http"] = "stdio"
    log_level: str = "INFO"


class Settings:
    """Aggregate of all settings sections, read once at import."""

    def __init__(self) -> None:
        self.falkordb = FalkorDBSettings()
        self.embedding = EmbeddingSettings()
        self.search = SearchSettings()
        self.debug = DebugSettings()
        self.limits = LimitsSettings()
        self.server = ServerSettings()

    def reload(self) -> None:
        """Re-read every section from the environment."""
        self.__init__()


settings = Settings()
