"""Notifier interface shared by the broker and mail strategies."""

from abc import ABC, abstractmethod
from typing import Sequence

from docnotify.domain.models import DocumentRecord

from .models import DispatchResult


class Notifier(ABC):
    """Delivers one notification per document.

    The processing and retry engines call ``prepare`` once with every record
    of the run, then ``dispatch`` per record. ``dispatch`` may be called from
    several worker threads at once.
    """

    name = "notifier"

    def prepare(self, records: Sequence[DocumentRecord]) -> None:
        """Batch pre-work for a run (for example owner lookups)."""
        return None

    @abstractmethod
    def dispatch(self, record: DocumentRecord) -> DispatchResult:
        """Deliver the notification for one document.

        Implementations report failures through the returned result; any
        exception that escapes is converted to a failed result by the caller.
        """

    @abstractmethod
    def check(self) -> None:
        """Verify the transport is reachable.

        Raises:
            Exception: Any error describing why the transport is unavailable
        """

    def close(self) -> None:
        """Release connections held by the notifier."""
        return None

    def __enter__(self) -> "Notifier":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
