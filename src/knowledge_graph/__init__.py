"""Knowledge Graph module: graph stores, schema and embeddings."""

from src.knowledge_graph.store import (
    GraphStore,
    MissingEndpointError,
    UnitOfWork,
)
from src.knowledge_graph.memory import (
    GraphState,
    InMemoryGraphStore,
    InMemoryUnitOfWork,
)
from src.knowledge_graph.client import Neo4jGraphStore
from src.knowledge_graph.schema import (
    apply_schema,
    verify_schema,
    clear_database,
    SCHEMA_VERSION,
)
from src.knowledge_graph.embeddings import (
    EmbeddingProvider,
    StubEmbeddingProvider,
    OpenAIEmbeddingProvider,
    get_embedding_provider,
    openai_dimension,
)

__all__ = [
    # Stores
    "GraphStore",
    "MissingEndpointError",
    "UnitOfWork",
    "GraphState",
    "InMemoryGraphStore",
    "InMemoryUnitOfWork",
    "Neo4jGraphStore",
    # Schema
    "apply_schema",
    "verify_schema",
    "clear_database",
    "SCHEMA_VERSION",
    # Embeddings
    "EmbeddingProvider",
    "StubEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "get_embedding_provider",
    "openai_dimension",
]
