"""Retry engine: re-dispatch notifications for failed ledger rows."""

from datetime import datetime
from typing import Callable, Dict, List, Optional
from uuid import uuid4

from docnotify.domain.models import DocumentRecord, ProcessedDocument
from docnotify.logging import get_logger
from docnotify.logging.context import log_context
from docnotify.notifications.models import DispatchResult
from docnotify.notifications.summary import SummaryOptions, SummaryReporter
from docnotify.persistence.database import get_session
from docnotify.persistence.repositories import DocumentLedger
from docnotify.utils.timestamps import utc_now

from .dispatch import Dispatcher
from .locking import exclusive_run
from .models import ProcessingResult

logger = get_logger(__name__, component="retry")


class RetryProcessor:
    """
    Re-dispatches notifications for ledger rows in failed state.

    Successful retries mark the row sent, clear its error and refresh
    ``processed_at``; failed retries only replace the error. All row updates
    are saved together at the end of the run.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        reporter: Optional[SummaryReporter] = None,
        session_factory: Callable = get_session,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.dispatcher = dispatcher
        self.reporter = reporter
        self.session_factory = session_factory
        self.clock = clock

    def retry(
        self,
        document_id: Optional[str] = None,
        summary: Optional[SummaryOptions] = None,
    ) -> ProcessingResult:
        """
        Retry one failed document, or every failed document.

        A document id that is unknown or already delivered is a no-op with
        zero counts.

        Raises:
            ProcessingInProgressError: If another run is in progress
            PersistenceError: If the ledger cannot be read or written
        """
        run_id = uuid4().hex

        with exclusive_run("retry"), log_context(run_id=run_id, operation="retry"):
            logger.info(
                "Retry of failed documents started",
                extra={"event": "retry.run.started", "document_id": document_id},
            )

            try:
                result = self._run(document_id)
            except Exception as e:
                logger.error(
                    f"Critical error during document retry processing: {e}",
                    exc_info=True,
                    extra={"event": "retry.run.failed", "error_type": type(e).__name__},
                )
                if self.reporter is not None:
                    self.reporter.send_error_alert(
                        "Document Retry Failed",
                        f"A critical error occurred during document retry processing: {e}",
                        e,
                    )
                raise

            logger.info(
                f"Retry completed. Processed: {result.processed_count}, Errors: {result.error_count}",
                extra={
                    "event": "retry.run.completed",
                    "processed": result.processed_count,
                    "errors": result.error_count,
                },
            )

            if self.reporter is not None:
                self.reporter.send_summary(result, "retry", summary)

            return result

    def _run(self, document_id: Optional[str]) -> ProcessingResult:
        result = ProcessingResult()

        with self.session_factory() as session:
            ledger = DocumentLedger(session)
            rows = ledger.failed(document_id)
            result.candidate_count = len(rows)

            if not rows:
                if document_id is not None:
                    logger.info(
                        f"Document {document_id} is not in failed state, nothing to retry",
                        extra={"event": "retry.noop", "document_id": document_id},
                    )
                else:
                    logger.info("No failed documents to retry", extra={"event": "retry.noop"})
                return result

            logger.info(
                f"Retrying {len(rows)} failed documents",
                extra={"event": "retry.selected", "count": len(rows)},
            )

            by_id: Dict[str, ProcessedDocument] = {row.document_id: row for row in rows}
            updated: List[ProcessedDocument] = []

            def record_outcome(record: DocumentRecord, outcome: DispatchResult) -> None:
                row = by_id[record.document_id]
                if outcome.success:
                    updated.append(
                        row.model_copy(
                            update={
                                "notification_sent": True,
                                "error_message": None,
                                "processed_at": self.clock(),
                            }
                        )
                    )
                    result.record_success()
                    logger.info(
                        f"Successfully retried document {record.document_id}",
                        extra={"event": "retry.document.succeeded", "document_id": record.document_id},
                    )
                else:
                    error = outcome.error or "Unknown error"
                    updated.append(
                        row.model_copy(update={"notification_sent": False, "error_message": error})
                    )
                    result.record_failure(f"Failed to retry document {record.document_id}: {error}")

            self.dispatcher.dispatch_all([row.to_record() for row in rows], on_result=record_outcome)

            ledger.save_all(updated)

        return result
