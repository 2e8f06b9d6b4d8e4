"""Data models and exceptions for the notification layer.

This module defines the per-document dispatch result and the exceptions
raised by notifier strategies, the SMTP client and the template renderer.
"""

from dataclasses import dataclass
from typing import Optional


class NotificationError(Exception):
    """Base exception for notification-related errors."""

    pass


class NotificationTemplateError(NotificationError):
    """Raised when template loading or rendering fails."""

    pass


class SMTPDeliveryError(NotificationError):
    """Raised when SMTP delivery fails."""

    pass


class BrokerPublishError(NotificationError):
    """Raised when a message cannot be published to or confirmed by the broker."""

    pass


class RecipientResolutionError(NotificationError):
    """Raised when no owner or no e-mail address can be found for a portfolio."""

    pass


@dataclass
class DispatchResult:
    """Outcome of delivering one notification for one document.

    Attributes:
        document_id: Document the notification was about
        success: Whether delivery succeeded
        error: Failure detail when delivery failed
        recipient: Address or routing key the notification went to
    """

    document_id: str
    success: bool
    error: Optional[str] = None
    recipient: Optional[str] = None

    @classmethod
    def sent(cls, document_id: str, recipient: Optional[str] = None) -> "DispatchResult":
        return cls(document_id=document_id, success=True, recipient=recipient)

    @classmethod
    def failed(cls, document_id: str, error: str) -> "DispatchResult":
        return cls(document_id=document_id, success=False, error=error or "Unknown error")
