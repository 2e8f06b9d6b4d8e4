"""Notification layer: per-document notifiers plus run summaries and alerts.

- Notifier: interface shared by the delivery strategies
- BrokerNotifier: publishes a message per document to a broker exchange
- MailNotifier: e-mails the portfolio owner resolved through the CRM
- build_notifier: selects the strategy from configuration
- SummaryReporter: run summary and error alert e-mails
- TemplateRenderer: Jinja2-based template rendering
- SMTPClient: SMTP wrapper with TLS/SSL support
"""

from .base import Notifier
from .broker import BrokerNotifier
from .factory import build_notifier
from .mail import MailNotifier
from .models import (
    BrokerPublishError,
    DispatchResult,
    NotificationError,
    NotificationTemplateError,
    RecipientResolutionError,
    SMTPDeliveryError,
)
from .payloads import build_document_context
from .smtp_client import SMTPClient, build_message, build_sender_address, parse_recipients
from .summary import SummaryOptions, SummaryReporter, summary_subject
from .templates import TemplateRenderer

__all__ = [
    # Strategies
    "Notifier",
    "BrokerNotifier",
    "MailNotifier",
    "build_notifier",
    # Reporting
    "SummaryReporter",
    "SummaryOptions",
    "summary_subject",
    # Models and results
    "DispatchResult",
    # Exceptions
    "NotificationError",
    "NotificationTemplateError",
    "SMTPDeliveryError",
    "BrokerPublishError",
    "RecipientResolutionError",
    # Components
    "TemplateRenderer",
    "SMTPClient",
    # Utilities
    "build_document_context",
    "build_message",
    "build_sender_address",
    "parse_recipients",
]
