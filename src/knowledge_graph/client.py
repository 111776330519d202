"""Neo4j backend for the graph store."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, TypeVar

from neo4j import AsyncDriver, AsyncGraphDatabase, AsyncManagedTransaction
from neo4j.exceptions import AuthError, ClientError, ServiceUnavailable, SessionExpired

from src.common.errors import StoreUnavailableError
from src.common.logging import get_logger
from src.common.models import NodeType, RelationshipType, TypedValue
from src.knowledge_graph.schema import CONSTRAINTS
from src.knowledge_graph.store import GraphStore, MissingEndpointError

logger = get_logger(__name__)

T = TypeVar("T")

# Failures that mean the store itself is gone, as opposed to one bad write.
UNAVAILABLE_ERRORS = (ServiceUnavailable, SessionExpired, AuthError)


def _node_label(node_type: NodeType | str) -> str:
    # Labels are interpolated into Cypher, so only known enum values pass.
    return NodeType(node_type).value


def _relationship_label(label: str) -> str:
    return RelationshipType(label).value


class Neo4jGraphStore(GraphStore):
    """Async Neo4j client implementing the merge primitives."""

    def __init__(
        self,
        uri: str,
        user: str,
        password: str,
        database: str = "neo4j",
    ):
        """Initialize Neo4j store."""
        self.uri = uri
        self.user = user
        self.password = password
        self.database = database
        self._driver: AsyncDriver | None = None

    async def connect(self) -> None:
        """Establish connection to Neo4j."""
        if self._driver is None:
            self._driver = AsyncGraphDatabase.driver(
                self.uri,
                auth=(self.user, self.password),
            )
            try:
                await self._driver.verify_connectivity()
                logger.info("neo4j_connected", uri=self.uri)
            except UNAVAILABLE_ERRORS as e:
                logger.error("neo4j_connection_failed", uri=self.uri, error=str(e))
                await self._driver.close()
                self._driver = None
                raise StoreUnavailableError(
                    f"Cannot reach Neo4j at {self.uri}: {e}"
                ) from e

    async def close(self) -> None:
        """Close the connection."""
        if self._driver:
            await self._driver.close()
            self._driver = None
            logger.info("neo4j_disconnected")

    @asynccontextmanager
    async def session(self):
        """Get an async session context manager."""
        if not self._driver:
            await self.connect()
        session = self._driver.session(database=self.database)
        try:
            yield session
        finally:
            await session.close()

    # -------------------------------------------------------------------------
    # Merge primitives
    # -------------------------------------------------------------------------

    async def merge_node(
        self,
        tx: AsyncManagedTransaction,
        node_type: NodeType,
        identifier: str,
        properties: dict[str, TypedValue],
    ) -> None:
        query = f"""
        MERGE (n:{_node_label(node_type)} {{identifier: $identifier}})
        SET n += $properties
        """
        patch = {k: v for k, v in properties.items() if k != "identifier"}
        result = await tx.run(query, identifier=identifier, properties=patch)
        await result.consume()

    async def merge_relationship(
        self,
        tx: AsyncManagedTransaction,
        source_type: NodeType,
        source_id: str,
        target_type: NodeType,
        target_id: str,
        label: str,
        deferred_target: bool = False,
    ) -> None:
        source_label = _node_label(source_type)
        target_label = _node_label(target_type)
        # A deferred target is merged by identity only; the row that owns the
        # node fills in its properties later.
        target_clause = "MERGE" if deferred_target else "MATCH"
        query = f"""
        MATCH (s:{source_label} {{identifier: $source_id}})
        {target_clause} (t:{target_label} {{identifier: $target_id}})
        MERGE (s)-[r:{_relationship_label(label)}]->(t)
        RETURN count(r) AS merged
        """
        result = await tx.run(query, source_id=source_id, target_id=target_id)
        record = await result.single()
        if record is None or record["merged"] == 0:
            missing = await self._find_missing_endpoint(
                tx, source_label, source_id, target_label, target_id
            )
            raise MissingEndpointError(*missing)

    async def _find_missing_endpoint(
        self,
        tx: AsyncManagedTransaction,
        source_label: str,
        source_id: str,
        target_label: str,
        target_id: str,
    ) -> tuple[str, str]:
        result = await tx.run(
            f"MATCH (s:{source_label} {{identifier: $source_id}}) RETURN count(s) AS found",
            source_id=source_id,
        )
        record = await result.single()
        if record is None or record["found"] == 0:
            return (source_label, source_id)
        return (target_label, target_id)

    async def execute_atomic(
        self, work: Callable[[AsyncManagedTransaction], Awaitable[T]]
    ) -> T:
        """Run ``work`` in a managed write transaction.

        The driver may replay ``work`` on transient errors; merges are
        idempotent so a replay is harmless.
        """
        try:
            async with self.session() as session:
                return await session.execute_write(work)
        except UNAVAILABLE_ERRORS as e:
            logger.error("neo4j_unavailable", error=str(e))
            raise StoreUnavailableError(str(e)) from e

    async def delete_all(self) -> int:
        summary = await self.execute_write("MATCH (n) DETACH DELETE n")
        logger.info("database_cleared", nodes_deleted=summary["nodes_deleted"])
        return summary["nodes_deleted"]

    async def ensure_constraints(self) -> None:
        """Create the identifier uniqueness constraints if they are missing.

        Concurrent ``MERGE``s on one identifier only lock each other when a
        uniqueness constraint backs the property.
        """
        for constraint in CONSTRAINTS:
            try:
                await self.execute_write(constraint)
            except ClientError as e:
                # Same rule under another name
                if e.code and "EquivalentSchemaRuleAlreadyExists" in e.code:
                    continue
                raise StoreUnavailableError(
                    f"Cannot create identifier constraint: {e}"
                ) from e
        logger.info("identifier_constraints_ensured", count=len(CONSTRAINTS))

    # -------------------------------------------------------------------------
    # Raw queries
    # -------------------------------------------------------------------------

    async def execute_query(
        self,
        query: str,
        parameters: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Execute a Cypher query and return results."""
        try:
            async with self.session() as session:
                result = await session.run(query, parameters or {})
                return await result.data()
        except UNAVAILABLE_ERRORS as e:
            raise StoreUnavailableError(str(e)) from e

    async def execute_write(
        self,
        query: str,
        parameters: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Execute a write query and return summary."""
        try:
            async with self.session() as session:
                result = await session.run(query, parameters or {})
                summary = await result.consume()
        except UNAVAILABLE_ERRORS as e:
            raise StoreUnavailableError(str(e)) from e
        return {
            "nodes_created": summary.counters.nodes_created,
            "nodes_deleted": summary.counters.nodes_deleted,
            "relationships_created": summary.counters.relationships_created,
            "relationships_deleted": summary.counters.relationships_deleted,
            "properties_set": summary.counters.properties_set,
        }

    async def health_check(self) -> bool:
        """Check if Neo4j is reachable."""
        try:
            if not self._driver:
                await self.connect()
            await self._driver.verify_connectivity()
            return True
        except Exception as e:
            logger.warning("neo4j_health_check_failed", error=str(e))
            return False
