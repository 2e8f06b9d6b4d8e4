"""Configuration schema models using Pydantic."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .duration import DurationParseError, parse_duration, validate_duration_range


class NotificationMode(str, Enum):
    """Delivery strategy used for per-document notifications."""

    BROKER = "broker"
    EMAIL = "email"


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


def _validate_timeout(value: str) -> str:
    try:
        seconds = parse_duration(value)
        validate_duration_range(seconds, min_seconds=1, max_seconds=3600, label="Timeout")
    except DurationParseError as e:
        raise ValueError(str(e)) from e
    return value


class DocumentStoreConfig(BaseModel):
    """Connection and query settings for the document store."""

    service_url: str = Field(..., min_length=1, description="Base URL of the document store API")
    document_types: List[str] = Field(
        ..., min_length=1, description="Document types to poll for"
    )
    page_size: int = Field(50, ge=1, le=1000, description="Results requested per page")
    timeout: str = Field("5m", description="Request timeout (e.g. '5m', 'PT5M')")
    user_agent: str = Field(
        "DocumentNotificationService/1.0", min_length=1, description="User-Agent for requests"
    )

    @field_validator("service_url")
    @classmethod
    def strip_service_url(cls, v: str) -> str:
        """Strip whitespace and trailing slash from the service URL."""
        stripped = v.strip().rstrip("/")
        if not stripped:
            raise ValueError("service_url cannot be empty")
        return stripped

    @field_validator("document_types")
    @classmethod
    def normalize_document_types(cls, v: List[str]) -> List[str]:
        """Strip whitespace, drop empties and duplicates (order preserved)."""
        normalized: List[str] = []
        for item in v:
            stripped = item.strip()
            if stripped and stripped not in normalized:
                normalized.append(stripped)
        if not normalized:
            raise ValueError("At least one non-empty document type is required")
        return normalized

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: str) -> str:
        return _validate_timeout(v)

    @property
    def timeout_seconds(self) -> int:
        return parse_duration(self.timeout)


class NotificationConfig(BaseModel):
    """Selects the notification strategy for the whole run."""

    mode: NotificationMode = Field(NotificationMode.BROKER, description="broker or email")
    dispatch_concurrency: int = Field(
        1, ge=1, le=32, description="Parallel dispatches per run (1 = sequential)"
    )

    model_config = {"use_enum_values": True}


class BrokerConfig(BaseModel):
    """Message broker (AMQP) publishing settings."""

    host: str = Field("", description="Broker host name")
    port: int = Field(5672, ge=1, le=65535, description="Broker port")
    virtual_host: str = Field("/", description="AMQP virtual host")
    exchange: str = Field("", description="Exchange to publish to")
    routing_key: str = Field("", description="Routing key for published messages")
    use_ssl: bool = Field(False, description="Connect using TLS")
    ssl_server_name: str = Field("", description="Expected TLS server name")
    certificate_path: str = Field("", description="Client certificate (PEM) for TLS")
    tenant_id: str = Field("jmfinn", description="Value of the $tenantid header")
    operation: str = Field("comm:communication", description="Value of the $operation header")
    application: str = Field("thrd:dsx-service", description="Value of the $application header")
    template_id: str = Field("", description="Communication template id placed in the message body")


class EmailConfig(BaseModel):
    """E-mail settings for summaries, alerts and owner notifications."""

    from_address: str = Field("", description="Sender address")
    from_name: str = Field("Document Notification Service", description="Sender display name")
    recipients: List[str] = Field(
        default_factory=list, description="Recipients of summary and error e-mails"
    )
    use_tls: bool = Field(True, description="Use TLS/STARTTLS for secure connection")
    send_summary_email: bool = Field(True, description="Send a summary after each run")
    send_failures_only: bool = Field(False, description="Only send summaries when errors occurred")
    template_path: Optional[str] = Field(
        None, description="Custom owner notification template (Jinja2 HTML)"
    )

    @field_validator("recipients")
    @classmethod
    def strip_recipients(cls, v: List[str]) -> List[str]:
        return [r.strip() for r in v if r and r.strip()]


class CrmConfig(BaseModel):
    """CRM directory used to look up portfolio owners in e-mail mode."""

    service_url: str = Field("", description="CRM organisation URL")
    client_id: str = Field("", description="OAuth client id")
    tenant_id: str = Field("common", description="Azure AD tenant id")
    timeout: str = Field("5m", description="Request timeout")
    batch_size: int = Field(50, ge=1, le=500, description="Portfolio ids per lookup batch")
    max_concurrent_batches: int = Field(
        4, ge=1, le=16, description="Lookup batches issued concurrently"
    )

    @field_validator("service_url")
    @classmethod
    def strip_service_url(cls, v: str) -> str:
        return v.strip().rstrip("/")

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: str) -> str:
        return _validate_timeout(v)

    @property
    def timeout_seconds(self) -> int:
        return parse_duration(self.timeout)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, description="Log output format (json or key-value)"
    )

    model_config = {"use_enum_values": True}


class AppConfig(BaseModel):
    """Root configuration object for the Document Notification Service."""

    document_store: DocumentStoreConfig = Field(..., description="Document store settings")
    notification: NotificationConfig = Field(
        default_factory=NotificationConfig, description="Notification strategy"
    )
    broker: BrokerConfig = Field(default_factory=BrokerConfig, description="Broker settings")
    email: EmailConfig = Field(default_factory=EmailConfig, description="E-mail settings")
    crm: CrmConfig = Field(default_factory=CrmConfig, description="CRM directory settings")
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )

    @model_validator(mode="after")
    def validate_strategy_settings(self):
        """Check that the selected notification mode has what it needs."""
        if self.notification.mode == NotificationMode.BROKER.value:
            missing = [
                name for name in ("host", "exchange") if not getattr(self.broker, name).strip()
            ]
            if missing:
                raise ValueError(
                    f"notification.mode is 'broker' but broker.{', broker.'.join(missing)} "
                    "is not set"
                )
        else:
            missing = [
                name for name in ("service_url", "client_id") if not getattr(self.crm, name)
            ]
            if missing:
                raise ValueError(
                    f"notification.mode is 'email' but crm.{', crm.'.join(missing)} is not set"
                )
            if not self.email.from_address.strip():
                raise ValueError("notification.mode is 'email' but email.from_address is not set")

        return self

    @property
    def uses_email_notification(self) -> bool:
        return self.notification.mode == NotificationMode.EMAIL.value
