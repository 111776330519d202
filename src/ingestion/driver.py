"""Batch driver: pulls rows for a participant and merges them one unit at a time."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator
from uuid import uuid4

from src.common.config import Settings
from src.common.errors import (
    IngestionError,
    RowSourceUnavailableError,
    StoreUnavailableError,
)
from src.common.logging import bind_batch_context, clear_batch_context, get_logger
from src.common.models import ParticipantRow
from src.ingestion.extractor import extract
from src.ingestion.orchestrator import MergeOrchestrator, MergeResult
from src.knowledge_graph.client import Neo4jGraphStore
from src.knowledge_graph.embeddings import EmbeddingProvider, get_embedding_provider
from src.knowledge_graph.store import GraphStore
from src.sources.base import RowSource

logger = get_logger(__name__)


class DriverState(str, Enum):
    """Where the batch driver is in its loop."""

    IDLE = "idle"
    FETCHING = "fetching"
    EXTRACTING_ROW = "extracting_row"
    MERGING = "merging"
    DONE = "done"
    ABORTED = "aborted"
    CANCELLED = "cancelled"


@dataclass
class IngestionConfig:
    """Everything the driver needs, passed in explicitly."""

    # Graph store
    neo4j_uri: str = "bolt://localhost:7687"
    neo4j_user: str = "neo4j"
    neo4j_password: str = ""
    neo4j_database: str = "neo4j"

    # Embeddings
    embeddings_enabled: bool = False
    embedding_provider: str = "none"
    embedding_model: str = "text-embedding-3-small"
    embedding_dimension: int = 1536
    openai_api_key: str = ""

    # Rows submitted concurrently; 1 keeps strict source order
    max_concurrency: int = 1

    def __post_init__(self) -> None:
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

    @classmethod
    def from_settings(cls, settings: Settings) -> "IngestionConfig":
        return cls(
            neo4j_uri=settings.neo4j_uri,
            neo4j_user=settings.neo4j_user,
            neo4j_password=settings.neo4j_password,
            neo4j_database=settings.neo4j_database,
            embeddings_enabled=settings.embeddings_enabled,
            embedding_provider=settings.resolved_embedding_provider,
            embedding_model=settings.embedding_model,
            embedding_dimension=settings.embedding_dimension,
            openai_api_key=settings.openai_api_key,
            max_concurrency=settings.ingest_concurrency,
        )

    def build_store(self) -> Neo4jGraphStore:
        return Neo4jGraphStore(
            uri=self.neo4j_uri,
            user=self.neo4j_user,
            password=self.neo4j_password,
            database=self.neo4j_database,
        )

    def build_embedder(self) -> EmbeddingProvider | None:
        if not self.embeddings_enabled:
            return None
        return get_embedding_provider(
            provider=self.embedding_provider,
            model=self.embedding_model,
            dimension=self.embedding_dimension,
            api_key=self.openai_api_key,
        )


@dataclass
class RowFailure:
    """A row that was counted as failed."""

    row_index: int
    movie_id: str | None
    person_id: str | None
    error_type: str
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "row_index": self.row_index,
            "movie_id": self.movie_id,
            "person_id": self.person_id,
            "error_type": self.error_type,
            "reason": self.reason,
        }


@dataclass
class IngestionSummary:
    """Counts reported for one participant batch."""

    participant: str
    batch_id: str = field(default_factory=lambda: uuid4().hex[:12])
    rows_found: int = 0
    rows_ingested: int = 0
    rows_failed: int = 0
    state: DriverState = DriverState.IDLE
    failures: list[RowFailure] = field(default_factory=list)
    error: str | None = None

    @property
    def aborted(self) -> bool:
        return self.state == DriverState.ABORTED

    def record_failure(self, failure: RowFailure) -> None:
        self.rows_failed += 1
        self.failures.append(failure)

    def to_dict(self) -> dict[str, Any]:
        return {
            "participant": self.participant,
            "batchId": self.batch_id,
            "rowsFound": self.rows_found,
            "rowsIngested": self.rows_ingested,
            "rowsFailed": self.rows_failed,
            "state": self.state.value,
            "failures": [f.to_dict() for f in self.failures],
            "error": self.error,
        }




class BatchDriver:
    """Drains a row source into a graph store.

    Rows are extracted and merged independently: a bad row is counted and
    skipped, while an unreachable source or store aborts the batch. With
    ``max_concurrency`` above one, up to that many rows are in flight at
    once, each still merged in its own ordered unit of work.

    ``state`` follows one row at a time through ``FETCHING``,
    ``EXTRACTING_ROW``, ``MERGING`` and back to ``IDLE``. When several rows
    are in flight it only reflects the latest transition of any of them.
    """

    def __init__(
        self,
        config: IngestionConfig,
        source: RowSource,
        store: GraphStore,
        embedder: EmbeddingProvider | None = None,
    ):
        self.config = config
        self.source = source
        self.store = store
        self.orchestrator = MergeOrchestrator(store, embedder=embedder)
        self.state = DriverState.IDLE
        self._cancel_requested = False
        self._fatal: IngestionError | None = None
        self._constraints_ready = False
        self._pending_fetch: asyncio.Future | None = None

    @classmethod
    def from_config(cls, config: IngestionConfig, source: RowSource) -> "BatchDriver":
        """Build a driver talking to Neo4j with the configured embedder."""
        return cls(
            config,
            source,
            config.build_store(),
            embedder=config.build_embedder(),
        )

    @property
    def embedder(self) -> EmbeddingProvider | None:
        return self.orchestrator.embedder

    def cancel(self) -> None:
        """Stop the current or next batch once the rows in flight are merged."""
        self._cancel_requested = True
        logger.info("cancel_requested")

    async def close(self) -> None:
        await self.store.close()

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    async def ingest_row(self, row: ParticipantRow | dict[str, Any]) -> MergeResult:
        """Extract and merge a single row.

        Raises:
            MissingRequiredIdentifierError: the row has no usable tconst or nconst.
            UnitOfWorkFailedError: the unit of work was discarded.
            StoreUnavailableError: the store is unreachable.
        """
        if not isinstance(row, ParticipantRow):
            row = ParticipantRow.from_mapping(row)
        return await self._merge_row(row)

    async def ingest_for_participant(self, name: str) -> IngestionSummary:
        """Ingest every joined row for ``name`` and report the counts.

        Never raises for an unreachable source or store: the summary comes
        back in state ``ABORTED`` with ``error`` set.
        """
        summary = IngestionSummary(participant=name)
        self._fatal = None
        bind_batch_context(participant=name, batch_id=summary.batch_id)
        logger.info("batch_started")
        try:
            await self._drain(summary)
        except IngestionError as e:
            if e.recoverable:
                raise
            self._abort(summary, e)
        finally:
            summary.state = self.state
            self._cancel_requested = False
            logger.info(
                "batch_completed",
                state=summary.state.value,
                rows_found=summary.rows_found,
                rows_ingested=summary.rows_ingested,
                rows_failed=summary.rows_failed,
            )
            clear_batch_context("participant", "batch_id")
        return summary

    async def ingest_many(self, names: list[str]) -> list[IngestionSummary]:
        """Ingest several participants in order, stopping after an abort."""
        summaries: list[IngestionSummary] = []
        for name in names:
            summary = await self.ingest_for_participant(name)
            summaries.append(summary)
            if summary.state in (DriverState.ABORTED, DriverState.CANCELLED):
                break
        return summaries

    # -------------------------------------------------------------------------
    # Loop
    # -------------------------------------------------------------------------

    async def _drain(self, summary: IngestionSummary) -> None:
        if self._cancel_requested:
            self.state = DriverState.CANCELLED
            return

        if not self._constraints_ready:
            await self.store.ensure_constraints()
            self._constraints_ready = True

        self.state = DriverState.FETCHING
        rows = self._open(summary.participant)
        slots = asyncio.Semaphore(self.config.max_concurrency)
        in_flight: set[asyncio.Task] = set()
        index = 0

        async def run(row_index: int, row: ParticipantRow) -> None:
            try:
                await self._process(row_index, row, summary)
            finally:
                slots.release()

        try:
            while True:
                await slots.acquire()
                if self._fatal is not None or self._cancel_requested:
                    slots.release()
                    break
                self.state = DriverState.FETCHING
                row = await self._fetch(rows)
                if row is None:
                    slots.release()
                    break
                summary.rows_found += 1
                task = asyncio.create_task(run(index, row))
                in_flight.add(task)
                task.add_done_callback(in_flight.discard)
                index += 1
        finally:
            if in_flight:
                await asyncio.gather(*in_flight)
            self._close_rows(rows)

        if self._fatal is not None:
            raise self._fatal
        self.state = (
            DriverState.CANCELLED if self._cancel_requested else DriverState.DONE
        )

    def _open(self, participant: str) -> Iterator[ParticipantRow]:
        try:
            return iter(self.source.iter_rows(participant))
        except IngestionError:
            raise
        except Exception as e:
            raise RowSourceUnavailableError(f"Opening rows failed: {e}") from e

    async def _fetch(self, rows: Iterator[ParticipantRow]) -> ParticipantRow | None:
        # Reading the source may block on disk, so it runs in a worker thread.
        # The fetch is shielded so a cancelled batch can wait for the thread
        # to leave the generator before closing it.
        fetch = asyncio.ensure_future(asyncio.to_thread(next, rows, None))
        self._pending_fetch = fetch
        try:
            return await asyncio.shield(fetch)
        except IngestionError:
            raise
        except Exception as e:
            raise RowSourceUnavailableError(f"Reading rows failed: {e}") from e

    def _close_rows(self, rows: Iterator[ParticipantRow]) -> None:
        close = getattr(rows, "close", None)
        pending, self._pending_fetch = self._pending_fetch, None
        if close is None:
            return
        if pending is None or pending.done():
            close()
            return

        def close_when_fetched(fetch: asyncio.Future) -> None:
            if not fetch.cancelled() and fetch.exception() is not None:
                logger.debug("late_fetch_failed", error=str(fetch.exception()))
            close()

        pending.add_done_callback(close_when_fetched)

    async def _merge_row(self, row: ParticipantRow) -> MergeResult:
        self.state = DriverState.EXTRACTING_ROW
        try:
            plan = extract(row)
            self.state = DriverState.MERGING
            return await self.orchestrator.merge(plan)
        finally:
            self.state = DriverState.IDLE

    async def _process(
        self, row_index: int, row: ParticipantRow, summary: IngestionSummary
    ) -> None:
        try:
            await self._merge_row(row)
        except StoreUnavailableError as e:
            if self._fatal is None:
                self._fatal = e
            summary.record_failure(self._failure(row_index, row, e))
        except Exception as e:
            summary.record_failure(self._failure(row_index, row, e))
            logger.warning(
                "row_failed",
                row_index=row_index,
                tconst=row.tconst,
                nconst=row.nconst,
                error_type=type(e).__name__,
                error=str(e),
            )
        else:
            summary.rows_ingested += 1
            logger.info("row_ingested", title=row.label(), tconst=row.tconst)

    @staticmethod
    def _failure(row_index: int, row: ParticipantRow, error: Exception) -> RowFailure:
        return RowFailure(
            row_index=row_index,
            movie_id=row.tconst,
            person_id=row.nconst,
            error_type=type(error).__name__,
            reason=str(error),
        )

    def _abort(self, summary: IngestionSummary, error: IngestionError) -> None:
        self.state = DriverState.ABORTED
        summary.error = str(error)
        logger.error(
            "batch_aborted",
            error_type=type(error).__name__,
            error=str(error),
        )
