"""Tests for the retry engine."""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from docnotify.domain.models import ProcessedDocument
from docnotify.persistence import DocumentLedger, PersistenceError, get_session
from docnotify.pipeline import Dispatcher, RetryProcessor
from tests.helpers import FakeNotifier

FIRST_ATTEMPT = datetime(2025, 1, 2, 6, 0, tzinfo=timezone.utc)
NOW = FIRST_ATTEMPT + timedelta(hours=2)


def seed(*rows):
    with get_session() as session:
        ledger = DocumentLedger(session)
        for row in rows:
            ledger.upsert(row)


def ledger_row(document_id, sent=False, error="Broker unavailable", portfolio_id="P1"):
    return ProcessedDocument(
        document_id=document_id,
        name=f"Document {document_id}",
        document_date=datetime(2025, 1, 1, tzinfo=timezone.utc),
        portfolio_id=portfolio_id,
        processed_at=FIRST_ATTEMPT,
        notification_sent=sent,
        error_message=error,
    )


def fetch(document_id):
    with get_session() as session:
        return DocumentLedger(session).get(document_id)


def make_retrier(notifier, reporter=None):
    return RetryProcessor(
        dispatcher=Dispatcher(notifier),
        reporter=reporter,
        clock=lambda: NOW,
    )


class TestRetryAll:
    """Tests for retrying every failed document."""

    def test_successful_retry_clears_error(self, database):
        seed(ledger_row("D1", portfolio_id="P9"), ledger_row("D2", sent=True, error=None))
        notifier = FakeNotifier()

        result = make_retrier(notifier).retry()

        assert (result.processed_count, result.error_count) == (1, 0)
        assert result.candidate_count == 1
        assert notifier.dispatched == ["D1"]
        row = fetch("D1")
        assert row.notification_sent is True
        assert row.error_message is None
        assert row.processed_at == NOW
        assert row.portfolio_id == "P9"

    def test_failed_retry_updates_error_only(self, database):
        seed(ledger_row("D1", error="Connection refused"))

        result = make_retrier(FakeNotifier(fail={"D1"})).retry()

        assert (result.processed_count, result.error_count) == (0, 1)
        assert result.errors == ["Failed to retry document D1: Broker unavailable"]
        row = fetch("D1")
        assert row.notification_sent is False
        assert row.error_message == "Broker unavailable"
        assert row.processed_at == FIRST_ATTEMPT

    def test_sent_row_with_error_is_retried(self, database):
        seed(ledger_row("D1", sent=True, error="Partial delivery"))
        notifier = FakeNotifier()

        make_retrier(notifier).retry()

        assert notifier.dispatched == ["D1"]
        assert fetch("D1").error_message is None

    def test_retry_converges(self, database):
        seed(ledger_row("D1"), ledger_row("D2"), ledger_row("D3"))
        make_retrier(FakeNotifier(fail={"D2"})).retry()

        second = make_retrier(FakeNotifier()).retry()

        assert (second.processed_count, second.error_count) == (1, 0)
        with get_session() as session:
            assert DocumentLedger(session).failed() == []

        third = make_retrier(FakeNotifier()).retry()
        assert third.candidate_count == 0

    def test_exception_in_notifier_is_isolated(self, database):
        seed(ledger_row("D1"), ledger_row("D2"))

        result = make_retrier(FakeNotifier(explode={"D1"})).retry()

        assert (result.processed_count, result.error_count) == (1, 1)
        assert fetch("D1").error_message == "boom D1"
        assert fetch("D2").notification_sent is True

    def test_no_failed_documents(self, database):
        notifier = FakeNotifier()
        result = make_retrier(notifier).retry()

        assert (result.processed_count, result.error_count, result.candidate_count) == (0, 0, 0)
        assert notifier.dispatched == []


class TestRetrySingle:
    """Tests for retrying a single document id."""

    def test_only_requested_document_is_retried(self, database):
        seed(ledger_row("D1"), ledger_row("D2"))
        notifier = FakeNotifier()

        result = make_retrier(notifier).retry(document_id="D2")

        assert result.processed_count == 1
        assert notifier.dispatched == ["D2"]
        assert fetch("D1").notification_sent is False

    @pytest.mark.parametrize("document_id", ["UNKNOWN", "DONE"])
    def test_unknown_or_delivered_document_is_noop(self, database, document_id):
        seed(ledger_row("DONE", sent=True, error=None))
        notifier = FakeNotifier()

        result = make_retrier(notifier).retry(document_id=document_id)

        assert (result.processed_count, result.error_count, result.candidate_count) == (0, 0, 0)
        assert notifier.dispatched == []


class TestRetryReporting:
    """Tests for summaries and alerts."""

    def test_summary_sent_with_retry_operation(self, database):
        seed(ledger_row("D1"))
        reporter = Mock()

        result = make_retrier(FakeNotifier(), reporter=reporter).retry()

        reporter.send_summary.assert_called_once_with(result, "retry", None)

    def test_fatal_error_alerts_and_raises(self):
        def broken_session():
            raise PersistenceError("disk I/O error")

        reporter = Mock()
        retrier = RetryProcessor(
            dispatcher=Dispatcher(FakeNotifier()),
            reporter=reporter,
            session_factory=broken_session,
        )

        with pytest.raises(PersistenceError):
            retrier.retry()

        assert reporter.send_error_alert.call_args.args[0] == "Document Retry Failed"
        reporter.send_summary.assert_not_called()
