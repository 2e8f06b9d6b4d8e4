"""Unit tests for the persistence layer."""

import logging
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select, text

from docnotify.domain.models import ProcessedDocument
from docnotify.persistence import (
    DatabaseConnectionError,
    DocumentLedger,
    PersistenceError,
    WatermarkStore,
    close_database,
    create_schema,
    get_engine,
    get_session,
    init_database,
)
from docnotify.persistence.database import ping_database, redact_url, sqlite_file_path
from docnotify.persistence.schema import LastQueryTimestampModel

T0 = datetime(2025, 1, 1, tzinfo=timezone.utc)


def make_row(document_id, sent=True, error=None, processed_at=T0, portfolio_id="P1"):
    return ProcessedDocument(
        document_id=document_id,
        name=f"Document {document_id}",
        document_date=datetime(2024, 12, 31, tzinfo=timezone.utc),
        portfolio_id=portfolio_id,
        processed_at=processed_at,
        notification_sent=sent,
        error_message=error,
    )


# ============================================================================
# Database lifecycle
# ============================================================================


class TestDatabaseInitialization:
    """Tests for database initialization."""

    def test_init_database_creates_file_and_directories(self, tmp_path):
        """Test initialization creates the SQLite file and parent directories."""
        db_file = tmp_path / "nested" / "ledger.db"
        init_database(f"sqlite:///{db_file}")
        try:
            assert db_file.exists()
            tables = create_schema(get_engine())
            assert "processed_documents" in tables
            assert "last_query_timestamps" in tables
        finally:
            close_database()

    def test_init_database_without_create_dirs(self, tmp_path):
        """Test a missing directory is an error when directory creation is off."""
        db_file = tmp_path / "missing" / "ledger.db"
        with pytest.raises(DatabaseConnectionError, match="does not exist"):
            init_database(f"sqlite:///{db_file}", create_dirs=False)

    def test_init_database_invalid_url(self):
        with pytest.raises(DatabaseConnectionError):
            init_database("")

    def test_file_database_uses_wal(self, tmp_path):
        init_database(f"sqlite:///{tmp_path / 'ledger.db'}")
        try:
            with get_session() as session:
                mode = session.execute(text("PRAGMA journal_mode")).scalar()
            assert mode.lower() == "wal"
        finally:
            close_database()

    def test_schema_creation_is_idempotent(self, database):
        first = create_schema(get_engine())
        second = create_schema(get_engine())
        assert sorted(first) == sorted(second)

    def test_create_tables_false_leaves_schema_empty(self):
        init_database("sqlite:///:memory:", create_tables=False)
        try:
            with get_session() as session:
                tables = session.execute(
                    text("SELECT name FROM sqlite_master WHERE type='table'")
                ).scalars().all()
            assert "processed_documents" not in tables
        finally:
            close_database()

    def test_ping_database(self, database):
        ping_database()

    def test_session_requires_initialization(self):
        close_database()
        with pytest.raises(DatabaseConnectionError, match="not initialized"):
            with get_session():
                pass
        with pytest.raises(DatabaseConnectionError):
            ping_database()

    def test_session_rolls_back_on_error(self, database):
        with pytest.raises(RuntimeError):
            with get_session() as session:
                DocumentLedger(session).upsert(make_row("D1"))
                raise RuntimeError("abort")

        with get_session() as session:
            assert DocumentLedger(session).get("D1") is None


def test_redact_url():
    assert redact_url("postgresql://user:secret@db:5432/app") == "postgresql://user:***@db:5432/app"
    assert redact_url("sqlite:///./data/ledger.db") == "sqlite:///./data/ledger.db"


def test_sqlite_file_path():
    assert sqlite_file_path("sqlite:///:memory:") is None
    assert sqlite_file_path("postgresql://db/app") is None
    assert sqlite_file_path("sqlite:///./data/ledger.db").name == "ledger.db"


# ============================================================================
# Ledger
# ============================================================================


class TestDocumentLedger:
    """Tests for the processed documents ledger."""

    def test_upsert_inserts_and_round_trips(self, database):
        row = make_row("D1", sent=False, error="Broker unavailable")
        with get_session() as session:
            DocumentLedger(session).upsert(row)

        with get_session() as session:
            stored = DocumentLedger(session).get("D1")

        assert stored == row

    def test_upsert_updates_in_place(self, database):
        with get_session() as session:
            DocumentLedger(session).upsert(make_row("D1", sent=False, error="boom"))

        with get_session() as session:
            ledger = DocumentLedger(session)
            ledger.upsert(make_row("D1", sent=True, processed_at=T0 + timedelta(hours=1)))
            assert ledger.count() == 1

        with get_session() as session:
            stored = DocumentLedger(session).get("D1")
        assert stored.notification_sent is True
        assert stored.error_message is None
        assert stored.processed_at == T0 + timedelta(hours=1)

    def test_existing_ids(self, database):
        with get_session() as session:
            DocumentLedger(session).save_all([make_row("D1"), make_row("D2")])

        with get_session() as session:
            found = DocumentLedger(session).existing_ids(["D1", "D3", "D2", "D1"])

        assert found == {"D1", "D2"}

    def test_existing_ids_beyond_chunk_size(self, database):
        ids = [f"D{i}" for i in range(1200)]
        with get_session() as session:
            DocumentLedger(session).save_all([make_row(i) for i in ids[::2]])

        with get_session() as session:
            found = DocumentLedger(session).existing_ids(ids)

        assert found == set(ids[::2])

    def test_existing_ids_empty(self, database):
        with get_session() as session:
            assert DocumentLedger(session).existing_ids([]) == set()

    def test_failed_rows(self, database):
        """Test a row is failed when not sent or when it carries an error."""
        with get_session() as session:
            DocumentLedger(session).save_all(
                [
                    make_row("ok"),
                    make_row("unsent", sent=False),
                    make_row("errored", sent=True, error="late bounce"),
                    make_row("empty-error", sent=True, error=""),
                ]
            )

        with get_session() as session:
            ledger = DocumentLedger(session)
            failed_ids = {row.document_id for row in ledger.failed()}
            assert failed_ids == {"unsent", "errored"}
            assert ledger.count_failed() == 2
            assert ledger.count() == 4
            assert [r.document_id for r in ledger.failed("unsent")] == ["unsent"]
            assert ledger.failed("ok") == []
            assert ledger.failed("unknown") == []

    def test_recent_orders_newest_first(self, database):
        with get_session() as session:
            DocumentLedger(session).save_all(
                [make_row(f"D{i}", processed_at=T0 + timedelta(minutes=i)) for i in range(5)]
            )

        with get_session() as session:
            recent = DocumentLedger(session).recent(limit=3)

        assert [r.document_id for r in recent] == ["D4", "D3", "D2"]

    def test_errors_are_wrapped(self, database):
        with get_session() as session:
            session.execute(text("DROP TABLE processed_documents"))
            with pytest.raises(PersistenceError):
                DocumentLedger(session).count()


# ============================================================================
# Watermark
# ============================================================================


class TestWatermarkStore:
    """Tests for the last successful query timestamp."""

    def test_default_is_one_day_before_now(self, database):
        now = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)
        with get_session() as session:
            store = WatermarkStore(session)
            assert store.get_record() is None
            assert store.get_last(now) == now - timedelta(days=1)

    def test_advance_inserts_then_updates_single_row(self, database):
        with get_session() as session:
            WatermarkStore(session).advance(T0)
        with get_session() as session:
            WatermarkStore(session).advance(T0 + timedelta(hours=2))

        with get_session() as session:
            store = WatermarkStore(session)
            assert store.get_last(T0) == T0 + timedelta(hours=2)
            rows = session.execute(select(LastQueryTimestampModel)).scalars().all()
            assert len(rows) == 1

    def test_never_moves_backwards(self, database):
        later = T0 + timedelta(days=1)
        with get_session() as session:
            WatermarkStore(session).advance(later)
        with get_session() as session:
            record = WatermarkStore(session).advance(T0)

        assert record.last_successful_query == later
        assert record.updated_at == later

    def test_refused_advance_keeps_latest_row_authoritative(self, database):
        """Test that a refused advance never hands authority to an older row."""
        with get_session() as session:
            session.add_all(
                [
                    LastQueryTimestampModel(
                        last_successful_query="2025-01-01T00:00:00.000000Z",
                        updated_at="2025-02-15T00:00:00.000000Z",
                    ),
                    LastQueryTimestampModel(
                        last_successful_query="2025-03-01T00:00:00.000000Z",
                        updated_at="2025-03-01T00:00:00.000000Z",
                    ),
                ]
            )

        with get_session() as session:
            WatermarkStore(session).advance(datetime(2025, 2, 1, tzinfo=timezone.utc))

        with get_session() as session:
            last = WatermarkStore(session).get_last(T0)

        assert last == datetime(2025, 3, 1, tzinfo=timezone.utc)

    def test_refused_advance_is_not_logged_as_advanced(self, database, caplog):
        later = T0 + timedelta(days=1)
        with get_session() as session:
            WatermarkStore(session).advance(later)

        with caplog.at_level(logging.INFO, logger="docnotify.persistence.repositories"):
            with get_session() as session:
                WatermarkStore(session).advance(T0)

        events = [getattr(r, "event", None) for r in caplog.records]
        assert "watermark.not_advanced" in events
        assert "watermark.advanced" not in events

    def test_naive_datetimes_are_treated_as_utc(self, database):
        with get_session() as session:
            record = WatermarkStore(session).advance(datetime(2025, 1, 1, 8, 30))
        assert record.last_successful_query == datetime(2025, 1, 1, 8, 30, tzinfo=timezone.utc)

    def test_latest_row_is_authoritative(self, database):
        """Test the most recently updated row wins when several exist."""
        with get_session() as session:
            session.add_all(
                [
                    LastQueryTimestampModel(
                        last_successful_query="2025-01-01T00:00:00.000000Z",
                        updated_at="2025-01-01T00:00:00.000000Z",
                    ),
                    LastQueryTimestampModel(
                        last_successful_query="2025-02-01T00:00:00.000000Z",
                        updated_at="2025-02-01T00:00:00.000000Z",
                    ),
                ]
            )

        with get_session() as session:
            last = WatermarkStore(session).get_last(T0)

        assert last == datetime(2025, 2, 1, tzinfo=timezone.utc)
