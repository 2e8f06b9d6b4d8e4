"""Additional validation utilities for configuration."""

import warnings
from typing import Any, Dict, List


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """
    Check configuration for potential issues and return warnings.

    Args:
        config_dict: Raw configuration dictionary

    Returns:
        List of warning messages
    """
    warning_messages = []

    store = config_dict.get("document_store", {})
    if isinstance(store, dict):
        page_size = store.get("page_size", 50)
        if isinstance(page_size, int) and page_size > 500:
            warning_messages.append(
                f"Large document_store.page_size ({page_size}) may cause slow responses"
            )

        document_types = store.get("document_types", [])
        if isinstance(document_types, list):
            normalized = [t.strip() for t in document_types if isinstance(t, str)]
            if len(normalized) != len(set(normalized)):
                duplicates = set(t for t in normalized if normalized.count(t) > 1)
                warning_messages.append(
                    f"Duplicate document types will be deduplicated: {', '.join(sorted(duplicates))}"
                )

    notification = config_dict.get("notification", {})
    mode = "broker"
    if isinstance(notification, dict):
        mode = str(notification.get("mode", "broker")).lower()
        concurrency = notification.get("dispatch_concurrency", 1)
        if isinstance(concurrency, int) and concurrency > 8:
            warning_messages.append(
                f"High dispatch_concurrency ({concurrency}) may exceed broker or SMTP limits"
            )

    email = config_dict.get("email", {})
    if isinstance(email, dict):
        if email.get("send_summary_email", True) and not email.get("recipients"):
            warning_messages.append(
                "email.recipients is empty; summary and error e-mails will not be sent"
            )
        if mode == "broker" and email.get("template_path"):
            warning_messages.append(
                "email.template_path is ignored when notification.mode is 'broker'"
            )

    crm = config_dict.get("crm", {})
    if isinstance(crm, dict) and mode == "broker" and crm.get("service_url"):
        warning_messages.append("crm settings are ignored when notification.mode is 'broker'")

    return warning_messages


def emit_warnings(warning_messages: List[str]) -> None:
    """
    Emit warning messages using Python's warnings module.

    Args:
        warning_messages: List of warning messages to emit
    """
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
