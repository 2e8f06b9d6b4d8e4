"""Document Notification Service.

Polls a document store for newly created documents, notifies portfolio
owners once per document and keeps an auditable ledger of outcomes.
"""

__version__ = "1.0.0"
