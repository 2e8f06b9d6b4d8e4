"""Persistence layer exceptions.

All persistence exceptions inherit from PersistenceError so the processing
engine can treat any ledger or watermark failure as fatal with a single
except clause.
"""


class PersistenceError(Exception):
    """Base exception for all persistence layer errors."""

    pass


class DatabaseConnectionError(PersistenceError):
    """Raised when database connection or initialization fails.

    Examples:
    - Invalid database URL format
    - Database directory missing and not allowed to be created
    - Database file permissions incorrect
    """

    pass


class RecordNotFoundError(PersistenceError):
    """Raised when a required ledger row is not found.

    Optional lookups return None instead of raising this.
    """

    pass


class DataIntegrityError(PersistenceError):
    """Raised when a database constraint is violated.

    Examples:
    - Duplicate document_id in processed_documents
    - NOT NULL violation on a ledger column
    """

    pass
