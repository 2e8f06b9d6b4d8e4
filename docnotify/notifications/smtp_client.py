"""SMTP client wrapper for email delivery.

This module provides a thin wrapper around Python's smtplib with support
for TLS/SSL, authentication, and proper connection lifecycle management.
"""

import smtplib
import ssl
from email.headerregistry import Address
from email.message import EmailMessage
from typing import Callable, Iterable, List, Optional, Union

from email_validator import EmailNotValidError, validate_email

from docnotify.config.environment import EnvironmentConfig
from docnotify.logging import get_logger

from .models import SMTPDeliveryError

logger = get_logger(__name__, component="smtp")


class SMTPClient:
    """Wrapper around smtplib for sending email messages.

    Each ``send`` opens and closes its own connection, so one client can be
    shared between dispatch worker threads.
    """

    def __init__(
        self,
        env_config: EnvironmentConfig,
        use_tls: bool = True,
        smtp_factory: Optional[Callable] = None,
        smtp_ssl_factory: Optional[Callable] = None,
    ):
        """Initialize SMTP client with optional factory injection.

        Args:
            env_config: Environment configuration with SMTP settings
            use_tls: Whether to upgrade plain connections with STARTTLS
            smtp_factory: Factory function for creating SMTP instances (for mocking)
            smtp_ssl_factory: Factory function for creating SMTP_SSL instances (for mocking)
        """
        self.env_config = env_config
        self.use_tls = use_tls
        self.smtp_factory = smtp_factory or smtplib.SMTP
        self.smtp_ssl_factory = smtp_ssl_factory or smtplib.SMTP_SSL

    @property
    def configured(self) -> bool:
        return self.env_config.smtp_configured

    def send(self, message: EmailMessage) -> None:
        """Send an email message via SMTP.

        Port 465 uses implicit TLS; any other port uses STARTTLS when
        ``use_tls`` is set.

        Raises:
            SMTPDeliveryError: If SMTP is not configured or delivery fails
        """
        if not self.configured:
            raise SMTPDeliveryError("SMTP is not configured (SMTP_HOST/SMTP_PORT missing)")

        smtp = None
        try:
            smtp = self._connect()

            if self.env_config.smtp_user and self.env_config.smtp_pass:
                logger.debug(f"Authenticating as {self.env_config.smtp_user}")
                smtp.login(self.env_config.smtp_user, self.env_config.smtp_pass)

            smtp.send_message(message)
            logger.debug(f"Message sent successfully to {message['To']}")

        except smtplib.SMTPException as e:
            error_msg = f"SMTP error during message delivery: {e}"
            logger.error(error_msg)
            raise SMTPDeliveryError(error_msg) from e
        except OSError as e:
            error_msg = f"Network error during SMTP connection: {e}"
            logger.error(error_msg)
            raise SMTPDeliveryError(error_msg) from e
        finally:
            if smtp is not None:
                try:
                    smtp.quit()
                except Exception as e:
                    logger.warning(f"Error closing SMTP connection: {e}")

    def check(self) -> None:
        """Open a connection and issue NOOP.

        Raises:
            SMTPDeliveryError: If the server cannot be reached
        """
        if not self.configured:
            raise SMTPDeliveryError("SMTP is not configured (SMTP_HOST/SMTP_PORT missing)")

        smtp = None
        try:
            smtp = self._connect()
            smtp.noop()
        except (smtplib.SMTPException, OSError) as e:
            raise SMTPDeliveryError(f"SMTP server unreachable: {e}") from e
        finally:
            if smtp is not None:
                try:
                    smtp.quit()
                except Exception as e:
                    logger.warning(f"Error closing SMTP connection: {e}")

    def _connect(self):
        host = self.env_config.smtp_host
        port = self.env_config.smtp_port

        if port == 465:
            logger.debug(f"Connecting to {host}:{port} with implicit TLS")
            return self.smtp_ssl_factory(host, port, context=ssl.create_default_context())

        logger.debug(f"Connecting to {host}:{port}")
        smtp = self.smtp_factory(host, port)
        if self.use_tls:
            logger.debug("Upgrading connection with STARTTLS")
            smtp.starttls(context=ssl.create_default_context())
        return smtp


def parse_recipients(recipients: Union[str, Iterable[str]]) -> List[str]:
    """Parse and validate e-mail addresses.

    Args:
        recipients: Comma-separated string or iterable of addresses

    Returns:
        List of normalized addresses

    Raises:
        ValueError: If any address is invalid or none are given
    """
    if isinstance(recipients, str):
        raw_emails = [email.strip() for email in recipients.split(",")]
    else:
        raw_emails = [email.strip() for email in recipients if email]

    parsed = []
    for email in raw_emails:
        if not email:
            continue

        try:
            validated = validate_email(email, check_deliverability=False)
            parsed.append(validated.normalized)
        except EmailNotValidError as e:
            raise ValueError(f"Invalid email address: '{email}' - {e}") from e

    if not parsed:
        raise ValueError("No valid email addresses given")

    return parsed


def build_sender_address(from_name: str, from_address: str, env_config: EnvironmentConfig) -> str:
    """Build the 'From' header for outgoing emails.

    Uses the configured sender address, then SMTP_USER, then a noreply
    address at the SMTP host.

    Returns:
        Formatted sender address (e.g., "Document Notification Service <noreply@example.com>")
    """
    sender_email = from_address or env_config.smtp_user or f"noreply@{env_config.smtp_host}"
    if not from_name:
        return sender_email
    username, _, domain = sender_email.partition("@")
    return str(Address(display_name=from_name, username=username, domain=domain))


def build_message(
    subject: str,
    sender: str,
    recipients: List[str],
    html_body: str,
    text_body: Optional[str] = None,
) -> EmailMessage:
    """Assemble an HTML e-mail with an optional plain-text part."""
    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = sender
    message["To"] = ", ".join(recipients)

    message.set_content(text_body or "This message requires an HTML-capable e-mail client.")
    message.add_alternative(html_body, subtype="html")
    return message
