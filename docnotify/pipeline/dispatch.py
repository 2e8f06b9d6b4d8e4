"""Fan-out of notifier dispatches for one run."""

import contextvars
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional, Sequence

from docnotify.domain.models import DocumentRecord
from docnotify.logging import get_logger
from docnotify.logging.context import log_context
from docnotify.notifications.base import Notifier
from docnotify.notifications.models import DispatchResult

logger = get_logger(__name__, component="dispatch")

ResultCallback = Callable[[DocumentRecord, DispatchResult], None]


class Dispatcher:
    """Runs ``notifier.dispatch`` for a batch of records.

    With ``concurrency == 1`` records are dispatched in order on the calling
    thread. Otherwise they run on a bounded thread pool. In both modes the
    ``on_result`` callback is invoked on the calling thread, so ledger writes
    and counters never run concurrently.
    """

    def __init__(self, notifier: Notifier, concurrency: int = 1):
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got: {concurrency}")
        self.notifier = notifier
        self.concurrency = concurrency

    def dispatch_all(
        self,
        records: Sequence[DocumentRecord],
        on_result: Optional[ResultCallback] = None,
    ) -> List[DispatchResult]:
        """Dispatch every record; a failure never stops the batch.

        Returns:
            One result per record, in input order
        """
        if not records:
            return []

        self._prepare(records)

        results: List[Optional[DispatchResult]] = [None] * len(records)

        if self.concurrency == 1 or len(records) == 1:
            for index, record in enumerate(records):
                result = self.dispatch_one(record)
                results[index] = result
                if on_result is not None:
                    on_result(record, result)
            return results

        workers = min(self.concurrency, len(records))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="dispatch") as pool:
            # Each task runs in a copy of the caller's context so log fields propagate
            futures = {
                pool.submit(contextvars.copy_context().run, self.dispatch_one, record): index
                for index, record in enumerate(records)
            }
            for future in as_completed(futures):
                index = futures[future]
                result = future.result()
                results[index] = result
                if on_result is not None:
                    on_result(records[index], result)

        return results

    def dispatch_one(self, record: DocumentRecord) -> DispatchResult:
        """Dispatch a single record, converting any exception into a failed result."""
        with log_context(document_id=record.document_id, portfolio_id=record.portfolio_id):
            try:
                result = self.notifier.dispatch(record)
            except Exception as e:
                logger.error(
                    f"Dispatch raised for document {record.document_id}: {e}",
                    exc_info=True,
                    extra={"event": "dispatch.failed", "error_type": type(e).__name__},
                )
                return DispatchResult.failed(record.document_id, str(e) or type(e).__name__)

            if result.success:
                logger.debug("Dispatch succeeded", extra={"event": "dispatch.succeeded"})
            else:
                logger.warning(
                    f"Dispatch failed for document {record.document_id}: {result.error}",
                    extra={"event": "dispatch.failed"},
                )
            return result

    def _prepare(self, records: Sequence[DocumentRecord]) -> None:
        try:
            self.notifier.prepare(records)
        except Exception as e:
            # Per-record dispatch reports the failure for each affected document
            logger.error(
                f"Notifier preparation failed: {e}",
                exc_info=True,
                extra={"event": "dispatch.prepare.failed", "error_type": type(e).__name__},
            )
