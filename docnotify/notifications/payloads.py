"""Payload resolution for notification templates.

Builds the context dictionaries handed to the Jinja2 templates.
"""

import traceback
from datetime import datetime
from typing import Dict, List, Optional

from docnotify.domain.models import DocumentRecord, PortfolioOwner
from docnotify.utils.timestamps import format_display_timestamp


def build_document_context(
    record: DocumentRecord, owner: PortfolioOwner, now: datetime
) -> Dict:
    """Build the owner e-mail template context.

    Returns:
        Dictionary with the template variables:
        - portfolio_id, document_id, document_name
        - owner_name: contact full name or organization name
        - document_date: YYYY-MM-DD (empty when unknown)
        - notification_date: YYYY-MM-DD HH:MM:SS UTC
        - organization_name: empty for contacts
        - is_contact: selects the person or organization wording
    """
    return {
        "portfolio_id": record.portfolio_id or "",
        "owner_name": owner.display_name,
        "document_name": record.name,
        "document_date": record.document_date.strftime("%Y-%m-%d") if record.document_date else "",
        "document_id": record.document_id,
        "notification_date": format_display_timestamp(now),
        "organization_name": "" if owner.is_contact else (owner.organization_name or ""),
        "is_contact": owner.is_contact,
    }


def build_summary_context(
    operation: str,
    processed_count: int,
    error_count: int,
    errors: List[str],
    now: datetime,
    dry_run: bool = False,
) -> Dict:
    return {
        "operation": operation,
        "processed_count": processed_count,
        "error_count": error_count,
        "errors": list(errors),
        "dry_run": dry_run,
        "completed_at": format_display_timestamp(now),
    }


def build_error_alert_context(
    subject: str, details: str, exc: Optional[BaseException], now: datetime
) -> Dict:
    context = {
        "subject": subject,
        "details": details,
        "occurred_at": format_display_timestamp(now),
        "exception_type": None,
        "exception_message": None,
        "traceback": None,
    }
    if exc is not None:
        context["exception_type"] = type(exc).__name__
        context["exception_message"] = str(exc)
        if exc.__traceback__ is not None:
            context["traceback"] = "".join(
                traceback.format_exception(type(exc), exc, exc.__traceback__)
            )
    return context
