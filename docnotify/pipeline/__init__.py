"""Pipeline orchestration for document processing and retries."""

from .dispatch import Dispatcher
from .locking import exclusive_run
from .models import ProcessingInProgressError, ProcessingResult
from .processor import DocumentProcessor
from .retry import RetryProcessor

__all__ = [
    "DocumentProcessor",
    "RetryProcessor",
    "Dispatcher",
    "ProcessingResult",
    "ProcessingInProgressError",
    "exclusive_run",
]
