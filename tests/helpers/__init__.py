"""Test helper utilities for Document Notification Service tests."""

from .fakes import FakeDocumentSource, FakeNotifier, make_record

__all__ = ["FakeDocumentSource", "FakeNotifier", "make_record"]
