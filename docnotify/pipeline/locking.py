"""Process-wide guard allowing a single processing or retry run at a time."""

import threading
from contextlib import contextmanager
from typing import Iterator

from docnotify.logging import get_logger

from .models import ProcessingInProgressError

logger = get_logger(__name__, component="pipeline")

_run_lock = threading.Lock()


@contextmanager
def exclusive_run(operation: str) -> Iterator[None]:
    """Hold the run lock for the duration of the block.

    Raises:
        ProcessingInProgressError: If another run is already in progress
    """
    if not _run_lock.acquire(blocking=False):
        logger.warning(
            f"{operation} rejected: another run is in progress",
            extra={"event": "pipeline.run.rejected", "operation": operation, "reason": "lock_held"},
        )
        raise ProcessingInProgressError(f"Cannot start {operation}: another run is in progress")
    try:
        yield
    finally:
        _run_lock.release()
