"""Neo4j schema definitions: constraints and indexes."""

from __future__ import annotations

from typing import TYPE_CHECKING

from src.common.logging import get_logger
from src.common.models import NodeType
from src.knowledge_graph.store import GraphStore

if TYPE_CHECKING:
    from src.knowledge_graph.client import Neo4jGraphStore

logger = get_logger(__name__)

# =============================================================================
# Schema Version
# =============================================================================

SCHEMA_VERSION = "1.0.0"

# =============================================================================
# Constraints (Uniqueness)
# =============================================================================

CONSTRAINTS = [
    f"CREATE CONSTRAINT {node_type.value.lower()}_identifier IF NOT EXISTS "
    f"FOR (n:{node_type.value}) REQUIRE n.identifier IS UNIQUE"
    for node_type in NodeType
]

# =============================================================================
# Indexes (Performance)
# =============================================================================

INDEXES = [
    "CREATE INDEX movie_title IF NOT EXISTS FOR (m:Movie) ON (m.title)",
    "CREATE INDEX movie_start_year IF NOT EXISTS FOR (m:Movie) ON (m.startYear)",
    "CREATE INDEX person_name IF NOT EXISTS FOR (p:Person) ON (p.name)",
]

# =============================================================================
# Full-text and vector indexes for search
# =============================================================================

FULLTEXT_INDEXES = [
    """
    CREATE FULLTEXT INDEX movie_summary IF NOT EXISTS
    FOR (m:Movie) ON EACH [m.summary]
    """,
]


def vector_index(dimension: int) -> str:
    """Cosine vector index over ``Movie.embedding``."""
    return f"""
    CREATE VECTOR INDEX movie_embedding IF NOT EXISTS
    FOR (m:Movie) ON (m.embedding)
    OPTIONS {{indexConfig: {{
        `vector.dimensions`: {int(dimension)},
        `vector.similarity_function`: 'cosine'
    }}}}
    """


async def apply_schema(
    client: Neo4jGraphStore,
    embedding_dimension: int | None = None,
) -> dict:
    """Apply all schema constraints and indexes.

    The vector index is only created when ``embedding_dimension`` is given.
    """
    results = {
        "constraints_applied": 0,
        "indexes_applied": 0,
        "errors": [],
    }

    for constraint in CONSTRAINTS:
        try:
            await client.execute_write(constraint)
            results["constraints_applied"] += 1
            logger.debug("constraint_applied", query=constraint[:50])
        except Exception as e:
            if "already exists" not in str(e).lower():
                results["errors"].append(f"Constraint error: {e}")
                logger.warning("constraint_error", error=str(e))

    search_indexes = list(FULLTEXT_INDEXES)
    if embedding_dimension:
        search_indexes.append(vector_index(embedding_dimension))

    for index in INDEXES + search_indexes:
        try:
            await client.execute_write(index)
            results["indexes_applied"] += 1
            logger.debug("index_applied", query=index.strip()[:50])
        except Exception as e:
            if "already exists" not in str(e).lower():
                results["errors"].append(f"Index error: {e}")
                logger.warning("index_error", error=str(e))

    logger.info(
        "schema_applied",
        version=SCHEMA_VERSION,
        constraints=results["constraints_applied"],
        indexes=results["indexes_applied"],
        errors=len(results["errors"]),
    )

    return results


async def verify_schema(client: Neo4jGraphStore) -> dict:
    """Verify schema is properly applied."""
    constraints = await client.execute_query(
        "SHOW CONSTRAINTS YIELD name RETURN collect(name) as names"
    )
    indexes = await client.execute_query(
        "SHOW INDEXES YIELD name RETURN collect(name) as names"
    )

    return {
        "constraints": constraints[0]["names"] if constraints else [],
        "indexes": indexes[0]["names"] if indexes else [],
    }


async def clear_database(store: GraphStore, confirm: bool = False) -> int:
    """Clear all data from the graph. USE WITH CAUTION."""
    if not confirm:
        raise ValueError("Must set confirm=True to clear database")

    logger.warning("clearing_database")
    return await store.delete_all()
