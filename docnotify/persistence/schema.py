"""Database schema definition and ORM models.

This module defines SQLAlchemy ORM models for the ledger and watermark tables
and the conversions between ORM rows and domain models.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import Boolean, Column, Index, Integer, String, Text, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from docnotify.domain.models import ProcessedDocument, Watermark
from docnotify.logging import get_logger

logger = get_logger(__name__, component="database")

Base = declarative_base()

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


class ProcessedDocumentModel(Base):
    """ORM model for the processed_documents table (the ledger).

    One row per attempted document, keyed by the source document id.
    """

    __tablename__ = "processed_documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(String(255), nullable=False, unique=True)

    name = Column(Text, nullable=False, default="")
    document_date = Column(String(50), nullable=True)
    portfolio_id = Column(String(255), nullable=False, default="")

    # Timestamps (stored as ISO 8601 strings)
    processed_at = Column(String(50), nullable=False)

    # Outcome of the last attempt
    message_sent = Column(Boolean, nullable=False, default=False)
    error_message = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_processed_documents_portfolio", "portfolio_id"),
        Index("idx_processed_documents_document_date", "document_date"),
        Index("idx_processed_documents_processed_at", "processed_at"),
    )

    def to_domain(self) -> ProcessedDocument:
        return ProcessedDocument(
            document_id=self.document_id,
            name=self.name or "",
            document_date=_parse_datetime(self.document_date),
            portfolio_id=self.portfolio_id or "",
            processed_at=_parse_datetime(self.processed_at),
            notification_sent=bool(self.message_sent),
            error_message=self.error_message,
        )

    def apply(self, document: ProcessedDocument) -> None:
        """Copy the mutable ledger fields from a domain row."""
        self.name = document.name
        self.document_date = _format_datetime(document.document_date)
        self.portfolio_id = document.portfolio_id
        self.processed_at = _format_datetime(document.processed_at)
        self.message_sent = document.notification_sent
        self.error_message = document.error_message

    @classmethod
    def from_domain(cls, document: ProcessedDocument) -> "ProcessedDocumentModel":
        model = cls(document_id=document.document_id)
        model.apply(document)
        return model


class LastQueryTimestampModel(Base):
    """ORM model for the last_query_timestamps table (the watermark).

    Several historical rows may exist; the most recently updated one is
    authoritative.
    """

    __tablename__ = "last_query_timestamps"

    id = Column(Integer, primary_key=True, autoincrement=True)
    last_successful_query = Column(String(50), nullable=False)
    updated_at = Column(String(50), nullable=False)

    __table_args__ = (Index("idx_last_query_timestamps_updated_at", "updated_at"),)

    def to_domain(self) -> Watermark:
        return Watermark(
            last_successful_query=_parse_datetime(self.last_successful_query),
            updated_at=_parse_datetime(self.updated_at),
        )


def _format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Format datetime as ISO 8601 string for database storage."""
    if dt is None:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)

    return dt.strftime(TIMESTAMP_FORMAT)


def _parse_datetime(dt_str: Optional[str]) -> Optional[datetime]:
    """Parse a stored ISO 8601 string back to a UTC datetime."""
    if dt_str is None or dt_str == "":
        return None

    dt_str = dt_str.rstrip("Z")

    try:
        dt = datetime.strptime(dt_str, "%Y-%m-%dT%H:%M:%S.%f")
    except ValueError:
        dt = datetime.strptime(dt_str, "%Y-%m-%dT%H:%M:%S")

    return dt.replace(tzinfo=timezone.utc)


def create_schema(engine: Engine) -> List[str]:
    """Create all tables and indexes if they don't exist (idempotent).

    Returns:
        Names of the tables present after creation
    """
    logger.info(
        "Creating database schema if not exists",
        extra={"event": "database.schema.creating"},
    )

    try:
        Base.metadata.create_all(engine, checkfirst=True)

        tables = inspect(engine).get_table_names()
        logger.info(
            f"Database schema ready. Tables: {', '.join(tables)}",
            extra={"event": "database.schema.ready", "tables": tables},
        )
        return tables

    except Exception as e:
        logger.error(f"Failed to create database schema: {e}", exc_info=True)
        raise
