"""Persistence layer for the processed-document ledger and the watermark.

Public API:
    # Database initialization and session management
    - init_database(database_url: str, create_dirs=True, create_tables=True) -> None
    - get_session() -> ContextManager[Session]
    - close_database() -> None
    - get_engine() -> Engine
    - ping_database() -> None

    # Repository classes
    - DocumentLedger: keyed store of processed documents
    - WatermarkStore: last successful poll timestamp

    # Exceptions
    - PersistenceError: Base exception for all persistence errors
    - DatabaseConnectionError: Database connection/initialization failures
    - RecordNotFoundError: Required record not found
    - DataIntegrityError: Constraint violations

Example usage:
    >>> from docnotify.persistence import init_database, get_session, DocumentLedger
    >>>
    >>> init_database("sqlite:///./data/document_notifications.db")
    >>>
    >>> with get_session() as session:
    ...     ledger = DocumentLedger(session)
    ...     failed = ledger.failed()
"""

from .database import (
    close_database,
    get_engine,
    get_session,
    init_database,
    ping_database,
    redact_url,
    sqlite_file_path,
)
from .exceptions import (
    DatabaseConnectionError,
    DataIntegrityError,
    PersistenceError,
    RecordNotFoundError,
)
from .repositories import DocumentLedger, WatermarkStore
from .schema import create_schema

__all__ = [
    # Database functions
    "init_database",
    "get_session",
    "close_database",
    "get_engine",
    "ping_database",
    "redact_url",
    "sqlite_file_path",
    "create_schema",
    # Repositories
    "DocumentLedger",
    "WatermarkStore",
    # Exceptions
    "PersistenceError",
    "DatabaseConnectionError",
    "RecordNotFoundError",
    "DataIntegrityError",
]
