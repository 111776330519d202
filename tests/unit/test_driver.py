"""Unit tests for the batch driver."""

import asyncio
import threading

import pytest

from src.common.errors import (
    MissingRequiredIdentifierError,
    RowSourceUnavailableError,
    StoreUnavailableError,
)
from src.common.models import NodeType, ParticipantRow
from src.ingestion import BatchDriver, DriverState, IngestionConfig
from src.knowledge_graph import InMemoryGraphStore
from src.sources import InMemoryRowSource


def _ten_rows(row_factory, bad_index=None):
    rows = []
    for i in range(10):
        row = row_factory(tconst=f"tt{i:03d}", primaryTitle=f"Title {i}")
        if i == bad_index:
            row["tconst"] = "\\N"
        rows.append(row)
    return rows


class ExplodingSource:
    """Row source that fails after yielding some rows."""

    def __init__(self, rows, fail_after):
        self.rows = rows
        self.fail_after = fail_after

    def iter_rows(self, participant_name):
        for i, row in enumerate(InMemoryRowSource(self.rows).iter_rows(participant_name)):
            if i == self.fail_after:
                raise RowSourceUnavailableError("database went away")
            yield row


class ResettingSource:
    """Row source whose connection drops with a plain socket error."""

    def __init__(self, rows):
        self.rows = rows

    def iter_rows(self, participant_name):
        yield from InMemoryRowSource(self.rows[:1]).iter_rows(participant_name)
        raise ConnectionError("source socket reset")


class UnopenableSource:
    """Row source that fails before producing an iterator."""

    def iter_rows(self, participant_name):
        raise OSError("permission denied")


class BlockingSource:
    """Row source whose first fetch blocks until released."""

    def __init__(self, row):
        self.row = ParticipantRow.from_mapping(row)
        self.entered = threading.Event()
        self.release = threading.Event()
        self.closed = threading.Event()

    def iter_rows(self, participant_name):
        try:
            self.entered.set()
            self.release.wait(5)
            yield self.row
        finally:
            self.closed.set()


class ConstraintCountingStore(InMemoryGraphStore):
    """Store that counts constraint bootstraps."""

    def __init__(self, fail=False):
        super().__init__()
        self.fail = fail
        self.constraint_calls = 0

    async def ensure_constraints(self):
        self.constraint_calls += 1
        if self.fail:
            raise StoreUnavailableError("constraint creation refused")


class StateRecordingStore(InMemoryGraphStore):
    """Store that records the driver state seen inside each unit of work."""

    def __init__(self):
        super().__init__()
        self.driver = None
        self.states = []

    async def execute_atomic(self, work):
        self.states.append(self.driver.state)
        return await super().execute_atomic(work)


class UnavailableAfterStore(InMemoryGraphStore):
    """Store that becomes unreachable after a number of commits."""

    def __init__(self, commits_before_outage):
        super().__init__()
        self.commits_before_outage = commits_before_outage

    async def execute_atomic(self, work):
        if self.commits >= self.commits_before_outage:
            self.available = False
        return await super().execute_atomic(work)


class CancellingStore(InMemoryGraphStore):
    """Store that asks the driver to stop after a number of commits."""

    def __init__(self, cancel_after):
        super().__init__()
        self.cancel_after = cancel_after
        self.driver = None

    async def execute_atomic(self, work):
        result = await super().execute_atomic(work)
        if self.commits == self.cancel_after:
            self.driver.cancel()
        return result


def _driver(rows, store, **config):
    return BatchDriver(IngestionConfig(**config), InMemoryRowSource(rows), store)


class TestBatchDriver:
    """Tests for participant ingestion."""

    @pytest.mark.asyncio
    async def test_all_rows_ingested(self, row_factory, memory_store):
        """Test a clean batch."""
        driver = _driver(_ten_rows(row_factory), memory_store)

        summary = await driver.ingest_for_participant("Terry Gilliam")

        assert summary.rows_found == 10
        assert summary.rows_ingested == 10
        assert summary.rows_failed == 0
        assert summary.state == DriverState.DONE
        assert driver.state == DriverState.DONE
        assert len(memory_store.nodes_of_type(NodeType.MOVIE)) == 10

    @pytest.mark.asyncio
    async def test_bad_row_does_not_abort(self, row_factory, memory_store):
        """Test that one malformed row is counted and skipped."""
        driver = _driver(_ten_rows(row_factory, bad_index=4), memory_store)

        summary = await driver.ingest_for_participant("Terry Gilliam")

        assert summary.rows_found == 10
        assert summary.rows_ingested == 9
        assert summary.rows_failed == 1
        assert summary.state == DriverState.DONE
        assert summary.failures[0].row_index == 4
        assert summary.failures[0].error_type == "MissingRequiredIdentifierError"
        assert summary.to_dict()["rowsFailed"] == 1

    @pytest.mark.asyncio
    async def test_no_rows_for_unknown_participant(self, row_factory, memory_store):
        """Test an empty batch."""
        driver = _driver(_ten_rows(row_factory), memory_store)

        summary = await driver.ingest_for_participant("Nobody")

        assert summary.to_dict()["rowsFound"] == 0
        assert summary.state == DriverState.DONE

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, row_factory, memory_store):
        """Test that ingesting overlapping input twice adds nothing."""
        driver = _driver(_ten_rows(row_factory), memory_store)

        await driver.ingest_for_participant("Terry Gilliam")
        first = memory_store.snapshot()
        await driver.ingest_for_participant("Terry Gilliam")

        assert memory_store.nodes == first.nodes
        assert memory_store.relationships == first.relationships

    @pytest.mark.asyncio
    async def test_known_for_resolves_across_rows(self, row_factory, memory_store):
        """Test that a dangling KNOWN_FOR heals once the title is ingested."""
        rows = [row_factory(), row_factory(tconst="tt002", primaryTitle="12 Monkeys")]
        driver = _driver(rows, memory_store)

        await driver.ingest_row(rows[0])
        assert memory_store.dangling_relationships()

        await driver.ingest_row(rows[1])
        assert memory_store.dangling_relationships() == set()
        assert memory_store.get_node(NodeType.MOVIE, "tt002")["title"] == "12 Monkeys"

    @pytest.mark.asyncio
    async def test_source_failure_aborts(self, row_factory, memory_store):
        """Test that an unavailable source aborts with counts so far."""
        source = ExplodingSource(_ten_rows(row_factory), fail_after=3)
        driver = BatchDriver(IngestionConfig(), source, memory_store)

        summary = await driver.ingest_for_participant("Terry Gilliam")

        assert summary.state == DriverState.ABORTED
        assert summary.rows_found == 3
        assert summary.rows_ingested == 3
        assert "database went away" in summary.error

    @pytest.mark.asyncio
    async def test_store_outage_aborts(self, row_factory):
        """Test that store unavailability stops the batch."""
        store = UnavailableAfterStore(commits_before_outage=2)
        driver = _driver(_ten_rows(row_factory), store)

        summary = await driver.ingest_for_participant("Terry Gilliam")

        assert summary.state == DriverState.ABORTED
        assert summary.rows_ingested == 2
        assert summary.rows_failed == 1
        assert summary.rows_found == 3
        assert summary.failures[0].error_type == "StoreUnavailableError"

    @pytest.mark.asyncio
    async def test_cancel_between_rows(self, row_factory):
        """Test graceful cancellation after the current row."""
        store = CancellingStore(cancel_after=4)
        driver = _driver(_ten_rows(row_factory), store)
        store.driver = driver

        summary = await driver.ingest_for_participant("Terry Gilliam")

        assert summary.state == DriverState.CANCELLED
        assert summary.rows_ingested == 4
        assert summary.rows_found == 4
        assert len(store.nodes_of_type(NodeType.MOVIE)) == 4

    @pytest.mark.asyncio
    async def test_bounded_concurrency(self, row_factory, memory_store):
        """Test that concurrent submission gives the same graph."""
        sequential_store = InMemoryGraphStore()
        await _driver(_ten_rows(row_factory, bad_index=4), sequential_store).ingest_for_participant(
            "Terry Gilliam"
        )

        driver = _driver(_ten_rows(row_factory, bad_index=4), memory_store, max_concurrency=4)
        summary = await driver.ingest_for_participant("Terry Gilliam")

        assert summary.rows_ingested == 9
        assert summary.rows_failed == 1
        assert memory_store.nodes == sequential_store.nodes
        assert memory_store.relationships == sequential_store.relationships

    @pytest.mark.asyncio
    async def test_ingest_many(self, row_factory, memory_store):
        """Test ingesting several participants."""
        rows = [
            row_factory(),
            row_factory(nconst="nm002", primaryName="Jonathan Pryce", primaryProfession="actor"),
        ]
        driver = _driver(rows, memory_store)

        summaries = await driver.ingest_many(["Terry Gilliam", "Jonathan Pryce"])

        assert [s.rows_ingested for s in summaries] == [1, 1]
        assert memory_store.nodes_of_type(NodeType.PERSON) == ["nm001", "nm002"]
        assert memory_store.nodes_of_type(NodeType.PROFESSION) == ["actor", "director"]


class TestAbortAndCancel:
    """Tests for stopping a batch."""

    @pytest.mark.asyncio
    async def test_any_source_error_aborts(self, row_factory, memory_store):
        """Test that a source raising a plain exception still returns a summary."""
        source = ResettingSource(_ten_rows(row_factory))
        driver = BatchDriver(IngestionConfig(), source, memory_store)

        summary = await driver.ingest_for_participant("Terry Gilliam")

        assert summary.state == DriverState.ABORTED
        assert summary.rows_found == 1
        assert summary.rows_ingested == 1
        assert "source socket reset" in summary.error
        assert summary.to_dict()["state"] == "aborted"

    @pytest.mark.asyncio
    async def test_unopenable_source_aborts(self, memory_store):
        """Test that failing to start the query aborts the batch."""
        driver = BatchDriver(IngestionConfig(), UnopenableSource(), memory_store)

        summary = await driver.ingest_for_participant("Terry Gilliam")

        assert summary.state == DriverState.ABORTED
        assert summary.rows_found == 0
        assert "permission denied" in summary.error

    @pytest.mark.asyncio
    async def test_cancel_before_batch_is_honoured(self, row_factory, memory_store):
        """Test that a cancel issued before the batch stops it, once."""
        driver = _driver(_ten_rows(row_factory), memory_store)

        driver.cancel()
        cancelled = await driver.ingest_for_participant("Terry Gilliam")
        resumed = await driver.ingest_for_participant("Terry Gilliam")

        assert cancelled.state == DriverState.CANCELLED
        assert cancelled.rows_found == 0
        assert resumed.state == DriverState.DONE
        assert resumed.rows_ingested == 10

    @pytest.mark.asyncio
    async def test_cancelled_while_fetching(self, row_factory, memory_store):
        """Test task cancellation during a blocked fetch."""
        source = BlockingSource(row_factory())
        driver = BatchDriver(IngestionConfig(), source, memory_store)

        task = asyncio.create_task(driver.ingest_for_participant("Terry Gilliam"))
        assert await asyncio.to_thread(source.entered.wait, 5)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        source.release.set()
        assert await asyncio.to_thread(source.closed.wait, 5)
        assert memory_store.nodes == {}


class TestConstraintsAndState:
    """Tests for store bootstrap and driver state."""

    @pytest.mark.asyncio
    async def test_constraints_ensured_once(self, row_factory):
        """Test that identity constraints are created before the first batch only."""
        store = ConstraintCountingStore()
        rows = [
            row_factory(),
            row_factory(nconst="nm002", primaryName="Jonathan Pryce"),
        ]
        driver = _driver(rows, store, max_concurrency=4)

        summaries = await driver.ingest_many(["Terry Gilliam", "Jonathan Pryce"])

        assert store.constraint_calls == 1
        assert [s.state for s in summaries] == [DriverState.DONE, DriverState.DONE]

    @pytest.mark.asyncio
    async def test_constraint_failure_aborts(self, row_factory):
        """Test that a store refusing constraints aborts before any row."""
        store = ConstraintCountingStore(fail=True)
        driver = _driver(_ten_rows(row_factory), store)

        summary = await driver.ingest_for_participant("Terry Gilliam")

        assert summary.state == DriverState.ABORTED
        assert summary.rows_found == 0
        assert "constraint creation refused" in summary.error
        assert store.nodes == {}

    @pytest.mark.asyncio
    async def test_state_returns_to_idle_after_each_row(self, row_factory):
        """Test the per-row state transitions."""
        store = StateRecordingStore()
        driver = _driver([], store)
        store.driver = driver

        await driver.ingest_row(row_factory())
        await driver.ingest_row(row_factory(tconst="tt002"))

        assert store.states == [DriverState.MERGING, DriverState.MERGING]
        assert driver.state == DriverState.IDLE

    @pytest.mark.asyncio
    async def test_state_idle_after_failed_row(self, row_factory, memory_store):
        """Test that a failed row also leaves the driver idle."""
        driver = _driver([], memory_store)

        with pytest.raises(MissingRequiredIdentifierError):
            await driver.ingest_row(row_factory(tconst="\\N"))

        assert driver.state == DriverState.IDLE


class TestIngestionConfig:
    """Tests for driver configuration."""

    def test_rejects_zero_concurrency(self):
        """Test concurrency validation."""
        with pytest.raises(ValueError):
            IngestionConfig(max_concurrency=0)

    def test_embedder_off_by_default(self):
        """Test that no embedder is built unless enabled."""
        assert IngestionConfig().build_embedder() is None

    def test_stub_embedder(self):
        """Test building the stub embedder."""
        config = IngestionConfig(
            embeddings_enabled=True, embedding_provider="stub", embedding_dimension=16
        )
        assert config.build_embedder().dimension == 16

    def test_from_settings(self):
        """Test building config from settings."""
        from src.common.config import Settings

        settings = Settings(
            _env_file=None,
            neo4j_uri="bolt://graph:7687",
            neo4j_password="secret",
            openai_api_key="sk-test",
            ingest_concurrency=3,
        )
        config = IngestionConfig.from_settings(settings)

        assert config.neo4j_uri == "bolt://graph:7687"
        assert config.neo4j_password == "secret"
        assert config.embeddings_enabled is True
        assert config.embedding_provider == "openai"
        assert config.max_concurrency == 3

    def test_openai_embedder_dimension_follows_config(self):
        """Test that the built embedder reports the configured vector length."""
        config = IngestionConfig(
            embeddings_enabled=True,
            embedding_provider="openai",
            embedding_model="text-embedding-3-large",
            embedding_dimension=1536,
            openai_api_key="sk-test",
        )

        driver = BatchDriver(config, InMemoryRowSource([]), InMemoryGraphStore(),
                             embedder=config.build_embedder())

        assert driver.embedder.dimension == 1536
