"""Domain models for the Document Notification Service."""

from .models import DocumentRecord, OwnerType, PortfolioOwner, ProcessedDocument, Watermark

__all__ = ["DocumentRecord", "ProcessedDocument", "Watermark", "OwnerType", "PortfolioOwner"]
