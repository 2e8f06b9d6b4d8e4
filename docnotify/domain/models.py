"""Core domain models for documents, ledger rows, watermarks and owners.

This module defines the data structures used throughout the application:
- DocumentRecord: a document returned by the document store for a poll window
- ProcessedDocument: ledger row recording the latest delivery outcome
- Watermark: timestamp of the last completed poll
- PortfolioOwner: person or organization to notify about a portfolio
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from docnotify.utils.timestamps import ensure_utc


class DocumentRecord(BaseModel):
    """Document returned by the document store adapter.

    Records are ephemeral: they only live for the duration of a run. A record
    without a portfolio id is never processed.
    """

    document_id: str = Field(..., description="Source-assigned unique document id")
    name: str = Field("", description="Document display name")
    document_date: Optional[datetime] = Field(None, description="Document date (UTC)")
    portfolio_id: Optional[str] = Field(None, description="Portfolio the document belongs to")
    document_type: Optional[str] = Field(None, description="Document type in the store")

    @field_validator("document_id")
    @classmethod
    def strip_document_id(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("document_id cannot be empty or whitespace-only")
        return v.strip()

    @field_validator("portfolio_id", "document_type")
    @classmethod
    def strip_optional(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        stripped = v.strip()
        return stripped if stripped else None

    @field_validator("document_date")
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Ensure datetime is timezone-aware and in UTC."""
        return ensure_utc(v)

    @property
    def has_portfolio(self) -> bool:
        return bool(self.portfolio_id)

    model_config = {"json_schema_extra": {"example": {
        "document_id": "DOC-000123",
        "name": "Quarterly Report Q1",
        "document_date": "2025-04-02T00:00:00Z",
        "portfolio_id": "P-1001",
        "document_type": "Quarterly Report",
    }}}


class ProcessedDocument(BaseModel):
    """Ledger row: one per attempted document.

    The row is created on the first processing attempt and mutated in place
    by retries. ``notification_sent`` maps to the ``message_sent`` column.
    """

    document_id: str = Field(..., description="Unique document id (ledger key)")
    name: str = Field("", description="Document display name")
    document_date: Optional[datetime] = Field(None, description="Document date (UTC)")
    portfolio_id: str = Field("", description="Portfolio the document belongs to")
    processed_at: datetime = Field(..., description="Timestamp of the last attempt (UTC)")
    notification_sent: bool = Field(False, description="Whether delivery succeeded")
    error_message: Optional[str] = Field(None, description="Failure detail of the last attempt")

    @field_validator("document_date", "processed_at")
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Ensure datetime is timezone-aware and in UTC."""
        return ensure_utc(v)

    @property
    def is_failed(self) -> bool:
        """A row is failed when delivery did not succeed or an error is recorded."""
        return not self.notification_sent or bool(self.error_message)

    @classmethod
    def from_record(
        cls,
        record: DocumentRecord,
        processed_at: datetime,
        notification_sent: bool,
        error_message: Optional[str] = None,
    ) -> "ProcessedDocument":
        return cls(
            document_id=record.document_id,
            name=record.name,
            document_date=record.document_date,
            portfolio_id=record.portfolio_id or "",
            processed_at=processed_at,
            notification_sent=notification_sent,
            error_message=error_message,
        )

    def to_record(self) -> DocumentRecord:
        """Rebuild the document record so it can be dispatched again."""
        return DocumentRecord(
            document_id=self.document_id,
            name=self.name,
            document_date=self.document_date,
            portfolio_id=self.portfolio_id or None,
        )

    model_config = {"json_schema_extra": {"example": {
        "document_id": "DOC-000123",
        "name": "Quarterly Report Q1",
        "document_date": "2025-04-02T00:00:00Z",
        "portfolio_id": "P-1001",
        "processed_at": "2025-04-03T06:00:00Z",
        "notification_sent": False,
        "error_message": "Broker publish failed: connection refused",
    }}}


class Watermark(BaseModel):
    """Upper bound of the last successfully completed poll window."""

    last_successful_query: datetime = Field(..., description="Watermark value (UTC)")
    updated_at: datetime = Field(..., description="When the watermark row was last written (UTC)")

    @field_validator("last_successful_query", "updated_at")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        """Ensure datetime is timezone-aware and in UTC."""
        return ensure_utc(v)


class OwnerType(str, Enum):
    """Kind of party that owns a portfolio."""

    CONTACT = "contact"
    ORGANIZATION = "organization"


class PortfolioOwner(BaseModel):
    """Owner of a portfolio as resolved from the CRM directory."""

    portfolio_id: str = Field(..., description="Portfolio id the owner was matched on")
    owner_type: OwnerType = Field(..., description="Person (contact) or organization")
    first_name: Optional[str] = Field(None, description="Contact first name")
    last_name: Optional[str] = Field(None, description="Contact last name")
    organization_name: Optional[str] = Field(None, description="Organization name")
    email: Optional[str] = Field(None, description="Primary e-mail address")
    contact_person_email: Optional[str] = Field(
        None, description="Organization contact person e-mail"
    )

    @property
    def is_contact(self) -> bool:
        return self.owner_type == OwnerType.CONTACT

    @property
    def display_name(self) -> str:
        """Name used to greet the owner."""
        if self.is_contact:
            full_name = " ".join(p for p in (self.first_name, self.last_name) if p)
            return full_name.strip()
        return (self.organization_name or "").strip()

    @property
    def recipient_email(self) -> Optional[str]:
        """Owner e-mail, falling back to the contact person e-mail."""
        for candidate in (self.email, self.contact_person_email):
            if candidate and candidate.strip():
                return candidate.strip()
        return None
