"""Adapters for the remote services the pipeline reads from.

- Document store: document_store.DocumentStoreAdapter
- CRM directory: crm.CrmAdapter

Exception handling:
    from docnotify.adapters.exceptions import AdapterError, AdapterHTTPError, AdapterTimeoutError

Base class:
    from docnotify.adapters.base import BaseAdapter
"""

from .base import BaseAdapter
from .crm import CrmAdapter, OwnerLookup
from .document_store import DocumentStoreAdapter, convert_search_result
from .exceptions import (
    AdapterAuthenticationError,
    AdapterConfigurationError,
    AdapterError,
    AdapterHTTPError,
    AdapterResponseError,
    AdapterTimeoutError,
)

__all__ = [
    "BaseAdapter",
    # Adapters
    "DocumentStoreAdapter",
    "CrmAdapter",
    "OwnerLookup",
    "convert_search_result",
    # Exceptions
    "AdapterError",
    "AdapterHTTPError",
    "AdapterTimeoutError",
    "AdapterResponseError",
    "AdapterConfigurationError",
    "AdapterAuthenticationError",
]
