"""Unit tests for the SMTP client wrapper and message helpers."""

import smtplib
from email.message import EmailMessage
from unittest.mock import MagicMock, Mock

import pytest

from docnotify.config.environment import EnvironmentConfig
from docnotify.notifications.models import SMTPDeliveryError
from docnotify.notifications.smtp_client import (
    SMTPClient,
    build_message,
    build_sender_address,
    parse_recipients,
)


@pytest.fixture
def env_config_with_auth():
    """Environment config with SMTP authentication."""
    return EnvironmentConfig(
        smtp_host="smtp.example.com",
        smtp_port=587,
        smtp_user="user@example.com",
        smtp_pass="secret123",
    )


@pytest.fixture
def env_config_implicit_tls():
    """Environment config for implicit TLS (port 465)."""
    return EnvironmentConfig(smtp_host="smtp.example.com", smtp_port=465)


@pytest.fixture
def sample_message():
    """Sample email message for testing."""
    msg = EmailMessage()
    msg["Subject"] = "Test Subject"
    msg["From"] = "sender@example.com"
    msg["To"] = "recipient@example.com"
    msg.set_content("Test body")
    return msg


def test_send_with_starttls_and_login(env_config_with_auth, sample_message):
    """Test sending email with STARTTLS (port 587)."""
    mock_smtp = MagicMock()
    factory = Mock(return_value=mock_smtp)
    ssl_factory = Mock()

    client = SMTPClient(env_config_with_auth, smtp_factory=factory, smtp_ssl_factory=ssl_factory)
    client.send(sample_message)

    factory.assert_called_once_with("smtp.example.com", 587)
    ssl_factory.assert_not_called()
    mock_smtp.starttls.assert_called_once()
    mock_smtp.login.assert_called_once_with("user@example.com", "secret123")
    mock_smtp.send_message.assert_called_once_with(sample_message)
    mock_smtp.quit.assert_called_once()


def test_send_without_tls_or_auth(sample_message):
    """Test plain delivery when TLS is disabled and no credentials are set."""
    env = EnvironmentConfig(smtp_host="relay.internal", smtp_port=25)
    mock_smtp = MagicMock()
    client = SMTPClient(env, use_tls=False, smtp_factory=Mock(return_value=mock_smtp))

    client.send(sample_message)

    mock_smtp.starttls.assert_not_called()
    mock_smtp.login.assert_not_called()
    mock_smtp.send_message.assert_called_once()


def test_send_with_implicit_tls(env_config_implicit_tls, sample_message):
    """Test port 465 uses SMTP_SSL."""
    mock_smtp = MagicMock()
    ssl_factory = Mock(return_value=mock_smtp)
    factory = Mock()

    SMTPClient(env_config_implicit_tls, smtp_factory=factory, smtp_ssl_factory=ssl_factory).send(
        sample_message
    )

    factory.assert_not_called()
    assert ssl_factory.call_args.args == ("smtp.example.com", 465)
    assert "context" in ssl_factory.call_args.kwargs
    mock_smtp.starttls.assert_not_called()


def test_send_requires_configuration(sample_message):
    client = SMTPClient(EnvironmentConfig())
    assert not client.configured
    with pytest.raises(SMTPDeliveryError, match="not configured"):
        client.send(sample_message)


def test_smtp_error_is_wrapped_and_connection_closed(env_config_with_auth, sample_message):
    mock_smtp = MagicMock()
    mock_smtp.send_message.side_effect = smtplib.SMTPRecipientsRefused({})
    client = SMTPClient(env_config_with_auth, smtp_factory=Mock(return_value=mock_smtp))

    with pytest.raises(SMTPDeliveryError, match="SMTP error"):
        client.send(sample_message)
    mock_smtp.quit.assert_called_once()


def test_network_error_is_wrapped(env_config_with_auth, sample_message):
    client = SMTPClient(
        env_config_with_auth, smtp_factory=Mock(side_effect=ConnectionRefusedError("refused"))
    )
    with pytest.raises(SMTPDeliveryError, match="Network error"):
        client.send(sample_message)


def test_quit_failure_does_not_mask_success(env_config_with_auth, sample_message):
    mock_smtp = MagicMock()
    mock_smtp.quit.side_effect = smtplib.SMTPServerDisconnected("gone")
    client = SMTPClient(env_config_with_auth, smtp_factory=Mock(return_value=mock_smtp))

    client.send(sample_message)

    mock_smtp.send_message.assert_called_once()


def test_check_issues_noop(env_config_with_auth):
    mock_smtp = MagicMock()
    SMTPClient(env_config_with_auth, smtp_factory=Mock(return_value=mock_smtp)).check()
    mock_smtp.noop.assert_called_once()
    mock_smtp.quit.assert_called_once()


def test_check_unreachable(env_config_with_auth):
    client = SMTPClient(env_config_with_auth, smtp_factory=Mock(side_effect=OSError("no route")))
    with pytest.raises(SMTPDeliveryError, match="unreachable"):
        client.check()


class TestParseRecipients:
    """Tests for recipient parsing and validation."""

    def test_comma_separated_string(self):
        assert parse_recipients("a@example.com, b@example.com") == ["a@example.com", "b@example.com"]

    def test_iterable_skips_blanks(self):
        assert parse_recipients(["a@example.com", "", "  "]) == ["a@example.com"]

    def test_invalid_address(self):
        with pytest.raises(ValueError, match="Invalid email address"):
            parse_recipients("not-an-address")

    def test_empty(self):
        with pytest.raises(ValueError, match="No valid email"):
            parse_recipients([])


class TestSenderAndMessage:
    """Tests for sender address and message assembly."""

    def test_sender_with_display_name(self):
        sender = build_sender_address("Docs Team", "docs@example.com", EnvironmentConfig())
        assert sender == "Docs Team <docs@example.com>"

    def test_sender_falls_back_to_smtp_user(self, env_config_with_auth):
        assert build_sender_address("", "", env_config_with_auth) == "user@example.com"

    def test_sender_falls_back_to_noreply(self):
        env = EnvironmentConfig(smtp_host="smtp.example.com", smtp_port=25)
        assert build_sender_address("", "", env) == "noreply@smtp.example.com"

    def test_build_message_has_html_alternative(self):
        message = build_message(
            "Subject", "docs@example.com", ["a@example.com", "b@example.com"], "<p>Hi</p>", "Hi"
        )

        assert message["Subject"] == "Subject"
        assert message["To"] == "a@example.com, b@example.com"
        assert message.get_body(preferencelist=("plain",)).get_content().strip() == "Hi"
        assert "<p>Hi</p>" in message.get_body(preferencelist=("html",)).get_content()
