"""Merge orchestration: one row's operations as one unit of work."""

from __future__ import annotations

from dataclasses import dataclass

from src.common.errors import StoreUnavailableError, UnitOfWorkFailedError
from src.common.logging import get_logger
from src.common.models import GraphOperation, NodeRecord, NodeType
from src.ingestion.extractor import ExtractionPlan, validate_ordering
from src.knowledge_graph.embeddings import EmbeddingProvider
from src.knowledge_graph.store import GraphStore, UnitOfWork

logger = get_logger(__name__)


@dataclass(frozen=True)
class MergeResult:
    """Outcome of a committed unit of work."""

    movie_id: str
    person_id: str
    nodes_merged: int
    relationships_merged: int


class MergeOrchestrator:
    """Executes an ``ExtractionPlan`` against a ``GraphStore``.

    Embeddings are computed before the unit of work opens, then every
    operation runs in emission order inside ``execute_atomic``. Any failure
    discards the whole row.
    """

    def __init__(
        self,
        store: GraphStore,
        embedder: EmbeddingProvider | None = None,
    ):
        self.store = store
        self.embedder = embedder

    async def merge(self, plan: ExtractionPlan) -> MergeResult:
        """Commit ``plan`` atomically.

        Raises:
            StoreUnavailableError: the store is unreachable; the batch should stop.
            UnitOfWorkFailedError: anything else went wrong; nothing was written.
        """
        try:
            validate_ordering(plan.operations)
            operations = await self._prepare(plan.operations)
        except StoreUnavailableError:
            raise
        except Exception as e:
            raise UnitOfWorkFailedError(
                f"Preparing {plan.movie_id}/{plan.person_id} failed: {e}"
            ) from e

        async def work(tx: UnitOfWork) -> MergeResult:
            nodes = relationships = 0
            for op in operations:
                if isinstance(op, NodeRecord):
                    await self.store.merge_node(
                        tx, op.node_type, op.identifier, op.properties
                    )
                    nodes += 1
                else:
                    await self.store.merge_relationship(
                        tx,
                        op.source_type,
                        op.source_id,
                        op.target_type,
                        op.target_id,
                        op.label,
                        deferred_target=op.deferred_target,
                    )
                    relationships += 1
            return MergeResult(
                movie_id=plan.movie_id,
                person_id=plan.person_id,
                nodes_merged=nodes,
                relationships_merged=relationships,
            )

        try:
            return await self.store.execute_atomic(work)
        except StoreUnavailableError:
            raise
        except Exception as e:
            raise UnitOfWorkFailedError(
                f"Unit of work for {plan.movie_id}/{plan.person_id} discarded: {e}"
            ) from e

    async def _prepare(
        self, operations: tuple[GraphOperation, ...]
    ) -> tuple[GraphOperation, ...]:
        """Attach summary embeddings to movie nodes when an embedder is configured."""
        if self.embedder is None:
            return operations
        prepared: list[GraphOperation] = []
        for op in operations:
            summary = (
                op.properties.get("summary")
                if isinstance(op, NodeRecord) and op.node_type == NodeType.MOVIE
                else None
            )
            if isinstance(summary, str):
                embedding = await self.embedder.embed_text(summary)
                op = op.model_copy(
                    update={"properties": {**op.properties, "embedding": embedding}}
                )
                logger.debug("summary_embedded", movie_id=op.identifier)
            prepared.append(op)
        return tuple(prepared)
