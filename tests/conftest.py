"""Shared fixtures for the Document Notification Service test suite."""

import pytest

from docnotify.logging.context import clear_log_context
from docnotify.persistence.database import close_database, init_database


@pytest.fixture
def database():
    """Fresh in-memory SQLite database with the schema created."""
    init_database("sqlite:///:memory:")
    yield
    close_database()


@pytest.fixture(autouse=True)
def clean_log_context():
    """Clear logging context before and after each test."""
    clear_log_context()
    yield
    clear_log_context()


@pytest.fixture
def broker_config_dict():
    """Minimal valid configuration for broker mode."""
    return {
        "document_store": {
            "service_url": "https://docs.example.com/api",
            "document_types": ["Quarterly Report", "Statement"],
        },
        "notification": {"mode": "broker"},
        "broker": {
            "host": "mq.example.com",
            "exchange": "communications",
            "routing_key": "documents",
            "template_id": "NEW_DOCUMENT",
        },
        "email": {
            "from_address": "notifications@example.com",
            "recipients": ["ops@example.com"],
        },
    }


@pytest.fixture
def email_config_dict(broker_config_dict):
    """Minimal valid configuration for e-mail mode."""
    config = dict(broker_config_dict)
    config["notification"] = {"mode": "email"}
    config["crm"] = {
        "service_url": "https://crm.example.com",
        "client_id": "client-id",
        "tenant_id": "tenant-id",
    }
    return config
