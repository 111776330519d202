"""Graph store interface shared by the Neo4j and in-memory backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, TypeVar

from src.common.models import NodeType, TypedValue

T = TypeVar("T")

# Backend-specific transaction handle passed to the merge primitives.
UnitOfWork = Any


class MissingEndpointError(LookupError):
    """A relationship references a node that does not exist in the unit of work."""

    def __init__(self, node_type: str, identifier: str):
        super().__init__(f"No {node_type} node with identifier {identifier!r}")
        self.node_type = node_type
        self.identifier = identifier


class GraphStore(ABC):
    """Idempotent upsert primitives over a property graph.

    ``merge_node`` creates the node if absent and otherwise applies
    ``properties`` as a sparse patch. ``merge_relationship`` is set
    insertion keyed by (label, source, target). Both must be called with
    the handle given to the ``work`` callable of ``execute_atomic``.
    """

    @abstractmethod
    async def merge_node(
        self,
        tx: UnitOfWork,
        node_type: NodeType,
        identifier: str,
        properties: dict[str, TypedValue],
    ) -> None:
        """Upsert one node."""

    @abstractmethod
    async def merge_relationship(
        self,
        tx: UnitOfWork,
        source_type: NodeType,
        source_id: str,
        target_type: NodeType,
        target_id: str,
        label: str,
        deferred_target: bool = False,
    ) -> None:
        """Upsert one relationship.

        With ``deferred_target`` the target may not exist yet; otherwise a
        missing endpoint raises ``MissingEndpointError``.
        """

    @abstractmethod
    async def execute_atomic(self, work: Callable[[UnitOfWork], Awaitable[T]]) -> T:
        """Run ``work`` in a fresh unit of work, commit on success, discard on failure.

        Raises:
            StoreUnavailableError: if the store cannot be reached.
        """

    @abstractmethod
    async def delete_all(self) -> int:
        """Remove every node and relationship. Returns the number of nodes deleted."""

    async def ensure_constraints(self) -> None:
        """Make node identity unique before rows are merged concurrently.

        Backends whose merges are already serialized need nothing here.
        """

    async def close(self) -> None:
        """Release backend resources."""
