"""Configuration management."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    log_level: str = "INFO"
    json_logs: bool = False

    # Neo4j
    neo4j_uri: str = "bolt://localhost:7687"
    neo4j_user: str = "neo4j"
    neo4j_password: str = ""
    neo4j_database: str = "neo4j"

    # Row source
    imdb_db_path: str = "im.db"

    # Embeddings ("none", "stub" or "openai")
    openai_api_key: str = ""
    embedding_provider: str = "none"
    embedding_model: str = "text-embedding-3-small"
    embedding_dimension: int = 1536

    # Ingestion
    ingest_concurrency: int = Field(default=1, ge=1)

    @property
    def embeddings_enabled(self) -> bool:
        """Embeddings are on when a provider is selected explicitly or an OpenAI key is set."""
        if self.embedding_provider != "none":
            return True
        return bool(self.openai_api_key)

    @property
    def resolved_embedding_provider(self) -> str:
        """Provider name after applying the OpenAI-key shortcut."""
        if self.embedding_provider == "none" and self.openai_api_key:
            return "openai"
        return self.embedding_provider


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
