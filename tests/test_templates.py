"""Tests for notification template rendering and payload building."""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from docnotify.domain.models import DocumentRecord, OwnerType, PortfolioOwner
from docnotify.notifications.models import NotificationTemplateError
from docnotify.notifications.payloads import (
    build_document_context,
    build_error_alert_context,
    build_summary_context,
)
from docnotify.notifications.templates import TemplateRenderer

NOW = datetime(2025, 1, 2, 6, 30, tzinfo=timezone.utc)


@pytest.fixture
def renderer():
    return TemplateRenderer()


@pytest.fixture
def record():
    return DocumentRecord(
        document_id="D1",
        name="Quarterly Report Q4",
        document_date=datetime(2024, 12, 31, tzinfo=timezone.utc),
        portfolio_id="P1",
    )


@pytest.fixture
def contact_owner():
    return PortfolioOwner(
        portfolio_id="P1",
        owner_type=OwnerType.CONTACT,
        first_name="Ada",
        last_name="Lovelace",
        email="ada@example.com",
    )


@pytest.fixture
def organization_owner():
    return PortfolioOwner(
        portfolio_id="P1",
        owner_type=OwnerType.ORGANIZATION,
        organization_name="Acme & Sons",
        contact_person_email="cfo@acme.example",
    )


# ============================================================================
# Payloads
# ============================================================================


def test_document_context_for_contact(record, contact_owner):
    context = build_document_context(record, contact_owner, NOW)

    assert context == {
        "portfolio_id": "P1",
        "owner_name": "Ada Lovelace",
        "document_name": "Quarterly Report Q4",
        "document_date": "2024-12-31",
        "document_id": "D1",
        "notification_date": "2025-01-02 06:30:00 UTC",
        "organization_name": "",
        "is_contact": True,
    }


def test_document_context_for_organization(record, organization_owner):
    context = build_document_context(record, organization_owner, NOW)

    assert context["owner_name"] == "Acme & Sons"
    assert context["organization_name"] == "Acme & Sons"
    assert context["is_contact"] is False


def test_document_context_without_date(contact_owner):
    record = DocumentRecord(document_id="D2", portfolio_id="P1")
    assert build_document_context(record, contact_owner, NOW)["document_date"] == ""


def test_error_alert_context_includes_traceback():
    try:
        raise RuntimeError("database is locked")
    except RuntimeError as e:
        context = build_error_alert_context("Failure", "details", e, NOW)

    assert context["exception_type"] == "RuntimeError"
    assert context["exception_message"] == "database is locked"
    assert "Traceback" in context["traceback"]


def test_error_alert_context_without_exception():
    context = build_error_alert_context("Failure", "details", None, NOW)
    assert context["exception_type"] is None
    assert context["traceback"] is None


# ============================================================================
# Rendering
# ============================================================================


class TestTemplateRenderer:
    """Tests for TemplateRenderer."""

    def test_document_notification_for_contact(self, renderer, record, contact_owner):
        html = renderer.render_document_notification(
            build_document_context(record, contact_owner, NOW)
        )

        assert "Dear Ada Lovelace," in html
        assert "portfolio P1" in html
        assert "Quarterly Report Q4" in html
        assert "2024-12-31" in html
        assert "prepared specifically for you" in html
        assert "Generated on 2025-01-02 06:30:00 UTC" in html

    def test_document_notification_escapes_html(self, renderer, record, organization_owner):
        html = renderer.render_document_notification(
            build_document_context(record, organization_owner, NOW)
        )

        assert "Acme &amp; Sons" in html
        assert "prepared for your organization" in html

    def test_missing_variable_raises(self, renderer):
        with pytest.raises(NotificationTemplateError):
            renderer.render_document_notification({"owner_name": "Ada"})

    def test_summary(self, renderer):
        html = renderer.render_summary(
            build_summary_context(
                operation="process",
                processed_count=3,
                error_count=1,
                errors=["Failed to process document D9: Broker unavailable"],
                now=NOW,
            )
        )

        assert "Completed with Errors" in html
        assert "Documents Processed: 3" in html
        assert "Errors Encountered: 1" in html
        assert "Failed to process document D9: Broker unavailable" in html

    def test_summary_dry_run(self, renderer):
        html = renderer.render_summary(
            build_summary_context("process", 2, 0, [], NOW, dry_run=True)
        )
        assert "Completed Successfully" in html
        assert "(dry run)" in html

    def test_error_alert(self, renderer):
        html = renderer.render_error_alert(
            build_error_alert_context("Document Processing Failed", "it broke", ValueError("x"), NOW)
        )
        assert "Document Processing Failed" in html
        assert "ValueError" in html

    def test_broker_message(self, renderer):
        body = renderer.render_broker_message({"template_id": "NEW_DOC", "portfolio_id": "P<1>"})

        assert body.startswith("<Communication ")
        assert body.endswith("</Communication>")
        assert "<Type>NEW_DOC</Type>" in body
        assert "<EntityID>P&lt;1&gt;</EntityID>" in body
        assert "<ExternalData></ExternalData>" in body
        assert 'xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance"' in body

    def test_custom_template(self, tmp_path, record, contact_owner):
        template_file = tmp_path / "owner.html.j2"
        template_file.write_text("Hello {{ owner_name }} - {{ document_id }}")

        renderer = TemplateRenderer(custom_template_path=str(template_file))
        html = renderer.render_document_notification(
            build_document_context(record, contact_owner, NOW)
        )

        assert renderer.uses_custom_template
        assert html == "Hello Ada Lovelace - D1"

    def test_missing_custom_template_falls_back(self, tmp_path, record, contact_owner):
        renderer = TemplateRenderer(custom_template_path=str(tmp_path / "missing.html.j2"))

        html = renderer.render_document_notification(
            build_document_context(record, contact_owner, NOW)
        )

        assert not renderer.uses_custom_template
        assert "Dear Ada Lovelace," in html

    def test_broken_custom_template_falls_back(self, tmp_path):
        template_file = tmp_path / "broken.html.j2"
        template_file.write_text("{% if %}")

        renderer = TemplateRenderer(custom_template_path=str(template_file))

        assert not renderer.uses_custom_template

    def test_undecodable_custom_template_falls_back(self, tmp_path, record, contact_owner):
        template_file = tmp_path / "latin1.html.j2"
        template_file.write_bytes(b"Sch\xf6ne Gr\xfc\xdfe {{ owner_name }}")

        renderer = TemplateRenderer(custom_template_path=str(template_file))
        html = renderer.render_document_notification(
            build_document_context(record, contact_owner, NOW)
        )

        assert not renderer.uses_custom_template
        assert "Dear Ada Lovelace," in html

    def test_unreadable_custom_template_falls_back(self, tmp_path):
        with patch(
            "docnotify.notifications.templates.Environment.get_template",
            side_effect=PermissionError("Permission denied"),
        ):
            renderer = TemplateRenderer(custom_template_path=str(tmp_path / "owner.html.j2"))

        assert not renderer.uses_custom_template
