"""In-process graph store with the same merge semantics as the Neo4j backend."""

from __future__ import annotations

import asyncio
import copy
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from src.common.errors import StoreUnavailableError
from src.common.logging import get_logger
from src.common.models import NodeKey, NodeType, RelationshipKey, TypedValue
from src.knowledge_graph.store import GraphStore, MissingEndpointError

logger = get_logger(__name__)

T = TypeVar("T")

# Called with ("node", node key) or ("relationship", relationship key) before
# each write; returning True makes that write raise.
FailurePredicate = Callable[[str, tuple], bool]


@dataclass
class GraphState:
    """Nodes by (type, identifier) and relationships as a set of identity tuples."""

    nodes: dict[NodeKey, dict[str, TypedValue]] = field(default_factory=dict)
    relationships: set[RelationshipKey] = field(default_factory=set)

    def copy(self) -> "GraphState":
        return GraphState(
            nodes=copy.deepcopy(self.nodes),
            relationships=set(self.relationships),
        )


class InMemoryUnitOfWork:
    """Staged copy of the graph; becomes the committed state only on success."""

    def __init__(self, state: GraphState):
        self.state = state


class InMemoryGraphStore(GraphStore):
    """Graph store held in a dict and a set.

    Units of work are serialized by a lock and applied to a copy of the
    committed state, so a failing unit leaves no trace. ``fail_on`` lets
    tests reject chosen writes.
    """

    def __init__(self, fail_on: FailurePredicate | None = None) -> None:
        self.fail_on = fail_on
        self._state = GraphState()
        self._lock = asyncio.Lock()
        self.available = True
        self.commits = 0
        self.rollbacks = 0

    # -------------------------------------------------------------------------
    # Merge primitives
    # -------------------------------------------------------------------------

    async def merge_node(
        self,
        tx: InMemoryUnitOfWork,
        node_type: NodeType,
        identifier: str,
        properties: dict[str, TypedValue],
    ) -> None:
        key = (NodeType(node_type).value, identifier)
        self._check("node", key)
        stored = tx.state.nodes.setdefault(key, {"identifier": identifier})
        patch = {k: v for k, v in properties.items() if k != "identifier"}
        stored.update(copy.deepcopy(patch))

    async def merge_relationship(
        self,
        tx: InMemoryUnitOfWork,
        source_type: NodeType,
        source_id: str,
        target_type: NodeType,
        target_id: str,
        label: str,
        deferred_target: bool = False,
    ) -> None:
        source_key = (NodeType(source_type).value, source_id)
        target_key = (NodeType(target_type).value, target_id)
        if source_key not in tx.state.nodes:
            raise MissingEndpointError(*source_key)
        if not deferred_target and target_key not in tx.state.nodes:
            raise MissingEndpointError(*target_key)
        rel_key = (label, *source_key, *target_key)
        self._check("relationship", rel_key)
        tx.state.relationships.add(rel_key)

    def _check(self, kind: str, key: tuple) -> None:
        if self.fail_on is not None and self.fail_on(kind, key):
            raise RuntimeError(f"Write of {kind} {key} rejected")

    async def execute_atomic(
        self, work: Callable[[InMemoryUnitOfWork], Awaitable[T]]
    ) -> T:
        if not self.available:
            raise StoreUnavailableError("in-memory store marked unavailable")
        async with self._lock:
            tx = InMemoryUnitOfWork(self._state.copy())
            try:
                result = await work(tx)
            except BaseException:
                self.rollbacks += 1
                raise
            self._state = tx.state
            self.commits += 1
            return result

    async def delete_all(self) -> int:
        async with self._lock:
            deleted = len(self._state.nodes)
            self._state = GraphState()
        logger.info("database_cleared", nodes_deleted=deleted)
        return deleted

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    @property
    def nodes(self) -> dict[NodeKey, dict[str, TypedValue]]:
        return self._state.nodes

    @property
    def relationships(self) -> set[RelationshipKey]:
        return self._state.relationships

    def get_node(self, node_type: NodeType, identifier: str) -> dict[str, TypedValue] | None:
        return self._state.nodes.get((NodeType(node_type).value, identifier))

    def nodes_of_type(self, node_type: NodeType) -> list[str]:
        label = NodeType(node_type).value
        return sorted(ident for (kind, ident) in self._state.nodes if kind == label)

    def relationships_with_label(self, label: str) -> set[RelationshipKey]:
        return {rel for rel in self._state.relationships if rel[0] == label}

    def dangling_relationships(self) -> set[RelationshipKey]:
        """Relationships whose target node has not been merged yet."""
        return {
            rel
            for rel in self._state.relationships
            if (rel[3], rel[4]) not in self._state.nodes
        }

    def snapshot(self) -> GraphState:
        return self._state.copy()
