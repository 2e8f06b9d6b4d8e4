"""Environment variable loading and validation."""

import os
from typing import Optional

from .exceptions import ConfigurationError

DEFAULT_DATABASE_URL = "sqlite:///./data/document_notifications.db"

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class EnvironmentConfig:
    """Environment variable configuration holder (secrets and endpoints)."""

    def __init__(
        self,
        database_url: Optional[str] = None,
        document_store_username: Optional[str] = None,
        document_store_password: Optional[str] = None,
        broker_username: Optional[str] = None,
        broker_password: Optional[str] = None,
        smtp_host: Optional[str] = None,
        smtp_port: Optional[int] = None,
        smtp_user: Optional[str] = None,
        smtp_pass: Optional[str] = None,
        crm_client_secret: Optional[str] = None,
        log_level: Optional[str] = None,
    ):
        self.database_url = database_url or DEFAULT_DATABASE_URL
        self.document_store_username = document_store_username
        self.document_store_password = document_store_password
        self.broker_username = broker_username
        self.broker_password = broker_password
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_pass = smtp_pass
        self.crm_client_secret = crm_client_secret
        self.log_level = log_level

    @property
    def smtp_configured(self) -> bool:
        """True when an SMTP host and port are both available."""
        return bool(self.smtp_host) and self.smtp_port is not None


def load_environment_config(require_email: bool = False) -> EnvironmentConfig:
    """
    Load and validate environment variables.

    Optional environment variables:
    - DATABASE_URL: SQLAlchemy database URL
      (default: sqlite:///./data/document_notifications.db)
    - DOCUMENT_STORE_USERNAME / DOCUMENT_STORE_PASSWORD: basic auth for the store
    - BROKER_USERNAME / BROKER_PASSWORD: AMQP credentials
    - SMTP_HOST / SMTP_PORT: SMTP server (required in e-mail mode)
    - SMTP_USER / SMTP_PASS: SMTP authentication (both or neither)
    - CRM_CLIENT_SECRET: OAuth client secret (required in e-mail mode)
    - LOG_LEVEL: Override log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Args:
        require_email: True when owner notifications are sent by e-mail

    Returns:
        EnvironmentConfig object with validated values

    Raises:
        ConfigurationError: If required variables are missing or invalid
    """
    errors = []

    smtp_host = os.getenv("SMTP_HOST")
    smtp_port_str = os.getenv("SMTP_PORT")
    smtp_user = os.getenv("SMTP_USER")
    smtp_pass = os.getenv("SMTP_PASS")
    crm_client_secret = os.getenv("CRM_CLIENT_SECRET")
    log_level = os.getenv("LOG_LEVEL")

    if require_email:
        if not smtp_host:
            errors.append("Missing required environment variable: SMTP_HOST")
        if not smtp_port_str:
            errors.append("Missing required environment variable: SMTP_PORT")
        if not crm_client_secret:
            errors.append("Missing required environment variable: CRM_CLIENT_SECRET")

    smtp_port = None
    if smtp_port_str:
        try:
            smtp_port = int(smtp_port_str)
            if smtp_port < 1 or smtp_port > 65535:
                errors.append(
                    f"Invalid SMTP_PORT: {smtp_port}. Must be between 1 and 65535."
                )
        except ValueError:
            errors.append(
                f"Invalid SMTP_PORT: '{smtp_port_str}'. Must be a valid integer."
            )

    if log_level and log_level.upper() not in VALID_LOG_LEVELS:
        errors.append(
            f"Invalid LOG_LEVEL: '{log_level}'. Must be one of: {', '.join(VALID_LOG_LEVELS)}"
        )

    if smtp_user and not smtp_pass:
        errors.append(
            "SMTP_USER is set but SMTP_PASS is not. Both must be set for authentication."
        )
    elif smtp_pass and not smtp_user:
        errors.append(
            "SMTP_PASS is set but SMTP_USER is not. Both must be set for authentication."
        )

    if errors:
        raise ConfigurationError(
            "Environment variable validation failed",
            errors=errors,
            suggestions=[
                "Copy .env.example to .env and fill in your credentials",
                "Ensure all required environment variables are set",
                "Verify SMTP_PORT is a number between 1 and 65535",
            ],
        )

    return EnvironmentConfig(
        database_url=os.getenv("DATABASE_URL"),
        document_store_username=os.getenv("DOCUMENT_STORE_USERNAME"),
        document_store_password=os.getenv("DOCUMENT_STORE_PASSWORD"),
        broker_username=os.getenv("BROKER_USERNAME"),
        broker_password=os.getenv("BROKER_PASSWORD"),
        smtp_host=smtp_host,
        smtp_port=smtp_port,
        smtp_user=smtp_user,
        smtp_pass=smtp_pass,
        crm_client_secret=crm_client_secret,
        log_level=log_level.upper() if log_level else None,
    )
