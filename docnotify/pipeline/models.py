"""Data models for processing and retry runs."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


class ProcessingInProgressError(RuntimeError):
    """Raised when a run is started while another run holds the lock."""

    pass


@dataclass
class ProcessingResult:
    """
    Outcome of a processing or retry run.

    Attributes:
        processed_count: Documents notified successfully (in a dry run, the
            documents that would have been notified)
        error_count: Documents whose notification failed
        errors: One message per failed document
        dry_run: Whether the run skipped dispatch and writes
        candidate_count: Documents returned by the source (retry: rows selected)
        new_count: Candidates not yet present in the ledger
        since: Start of the poll window (None for retries)
    """

    processed_count: int = 0
    error_count: int = 0
    errors: List[str] = field(default_factory=list)
    dry_run: bool = False
    candidate_count: int = 0
    new_count: int = 0
    since: Optional[datetime] = None

    @property
    def has_errors(self) -> bool:
        return self.error_count > 0

    def record_success(self) -> None:
        self.processed_count += 1

    def record_failure(self, message: str) -> None:
        self.error_count += 1
        self.errors.append(message)
