"""Processing engine: poll the document store and notify about new documents."""

from datetime import datetime
from typing import Callable, List, Optional, Sequence
from uuid import uuid4

from docnotify.domain.models import DocumentRecord, ProcessedDocument
from docnotify.logging import get_logger
from docnotify.logging.context import log_context
from docnotify.notifications.models import DispatchResult
from docnotify.notifications.summary import SummaryOptions, SummaryReporter
from docnotify.persistence.database import get_session
from docnotify.persistence.repositories import DocumentLedger, WatermarkStore
from docnotify.utils.timestamps import format_timestamp, utc_now

from .dispatch import Dispatcher
from .locking import exclusive_run
from .models import ProcessingResult

logger = get_logger(__name__, component="processor")


class DocumentProcessor:
    """
    Runs one incremental poll of the document store.

    A run reads the watermark, fetches the documents created since then,
    drops those already in the ledger, dispatches a notification for each
    remaining document, records every outcome in the ledger and finally
    advances the watermark to the time the run started.

    Per-document failures are recorded and counted but never abort the run.
    Failures reading the source, the ledger or the watermark are fatal: an
    error alert is sent and the exception propagates to the caller.
    """

    def __init__(
        self,
        source,
        dispatcher: Dispatcher,
        document_types: Sequence[str],
        reporter: Optional[SummaryReporter] = None,
        session_factory: Callable = get_session,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            source: Document source with ``search(since, until, document_types)``
            dispatcher: Dispatcher wrapping the run's notifier
            document_types: Document types to poll for
            reporter: Summary and alert sender (None disables reporting)
            session_factory: Context manager yielding a database session
            clock: Returns the current UTC time
        """
        self.source = source
        self.dispatcher = dispatcher
        self.document_types = list(document_types)
        self.reporter = reporter
        self.session_factory = session_factory
        self.clock = clock

    def process(
        self,
        since: Optional[datetime] = None,
        dry_run: bool = False,
        force: bool = False,
        summary: Optional[SummaryOptions] = None,
    ) -> ProcessingResult:
        """
        Execute one processing run.

        Args:
            since: Explicit start of the poll window (overrides the watermark)
            dry_run: Report what would be notified without dispatching or writing
            force: Advance the watermark even when the source returns nothing
            summary: Overrides for summary e-mail delivery

        Returns:
            ProcessingResult with processed and error counts

        Raises:
            ProcessingInProgressError: If another run is in progress
            AdapterError: If the document store query fails
            PersistenceError: If the ledger or watermark cannot be read or written
        """
        run_id = uuid4().hex

        with exclusive_run("process"), log_context(run_id=run_id, operation="process"):
            logger.info(
                "Document processing started",
                extra={
                    "event": "processing.run.started",
                    "dry_run": dry_run,
                    "force": force,
                    "since_override": format_timestamp(since) if since else None,
                },
            )

            try:
                result = self._run(since, dry_run, force)
            except Exception as e:
                logger.error(
                    f"Critical error during document processing: {e}",
                    exc_info=True,
                    extra={"event": "processing.run.failed", "error_type": type(e).__name__},
                )
                if self.reporter is not None:
                    self.reporter.send_error_alert(
                        "Document Processing Failed",
                        f"A critical error occurred during document processing: {e}",
                        e,
                    )
                raise

            logger.info(
                f"Document processing completed. Processed: {result.processed_count}, "
                f"Errors: {result.error_count}",
                extra={
                    "event": "processing.run.completed",
                    "processed": result.processed_count,
                    "errors": result.error_count,
                    "candidates": result.candidate_count,
                    "new": result.new_count,
                    "dry_run": dry_run,
                },
            )

            if self.reporter is not None:
                self.reporter.send_summary(result, "process", summary)

            return result

    def _run(self, since: Optional[datetime], dry_run: bool, force: bool) -> ProcessingResult:
        now = self.clock()
        result = ProcessingResult(dry_run=dry_run)

        with self.session_factory() as session:
            ledger = DocumentLedger(session)
            watermarks = WatermarkStore(session)

            result.since = since if since is not None else watermarks.get_last(now)
            logger.info(
                f"Processing documents since {format_timestamp(result.since)}",
                extra={"event": "processing.window", "since": format_timestamp(result.since)},
            )

            candidates = self.source.search(result.since, now, self.document_types)
            result.candidate_count = len(candidates)
            logger.info(
                f"Found {len(candidates)} candidate documents",
                extra={"event": "processing.candidates", "count": len(candidates)},
            )

            if not candidates and not force:
                logger.info("No new documents found", extra={"event": "processing.no_candidates"})
                return result

            new_documents = self._select_new(candidates, ledger)
            result.new_count = len(new_documents)

            if new_documents:
                if dry_run:
                    self._report_dry_run(new_documents, result)
                else:
                    self._dispatch(new_documents, ledger, session, result)
            else:
                logger.info(
                    "All documents have already been processed",
                    extra={"event": "processing.nothing_new"},
                )

            if not dry_run:
                watermarks.advance(now)

        return result

    def _select_new(
        self, candidates: List[DocumentRecord], ledger: DocumentLedger
    ) -> List[DocumentRecord]:
        valid: List[DocumentRecord] = []
        seen = set()
        for record in candidates:
            if not record.has_portfolio:
                logger.warning(
                    f"Document {record.document_id} missing Portfolio ID, skipping",
                    extra={
                        "event": "processing.document.skipped",
                        "document_id": record.document_id,
                        "reason": "missing_portfolio_id",
                    },
                )
                continue
            if record.document_id in seen:
                continue
            seen.add(record.document_id)
            valid.append(record)

        existing = ledger.existing_ids(r.document_id for r in valid)
        new_documents = [r for r in valid if r.document_id not in existing]

        logger.info(
            f"Found {len(new_documents)} new documents "
            f"(filtered out {len(existing)} already processed)",
            extra={
                "event": "processing.new_documents",
                "new": len(new_documents),
                "already_processed": len(existing),
            },
        )
        return new_documents

    def _report_dry_run(self, records: List[DocumentRecord], result: ProcessingResult) -> None:
        for record in records:
            logger.info(
                f"[DRY RUN] Would notify portfolio {record.portfolio_id} "
                f"about document {record.document_id}",
                extra={
                    "event": "processing.dry_run.document",
                    "document_id": record.document_id,
                    "portfolio_id": record.portfolio_id,
                },
            )
            result.record_success()

    def _dispatch(
        self,
        records: List[DocumentRecord],
        ledger: DocumentLedger,
        session,
        result: ProcessingResult,
    ) -> None:
        def record_outcome(record: DocumentRecord, outcome: DispatchResult) -> None:
            processed_at = self.clock()
            if outcome.success:
                row = ProcessedDocument.from_record(record, processed_at, notification_sent=True)
                result.record_success()
            else:
                error = outcome.error or "Unknown error"
                row = ProcessedDocument.from_record(
                    record, processed_at, notification_sent=False, error_message=error
                )
                result.record_failure(f"Failed to process document {record.document_id}: {error}")

            ledger.upsert(row)
            session.commit()

        self.dispatcher.dispatch_all(records, on_result=record_outcome)
