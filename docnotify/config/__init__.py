"""Configuration management module for the Document Notification Service."""

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import load_config, parse_app_config
from .models import (
    AppConfig,
    BrokerConfig,
    CrmConfig,
    DocumentStoreConfig,
    EmailConfig,
    LogFormat,
    LogLevel,
    LoggingConfig,
    NotificationConfig,
    NotificationMode,
)

__all__ = [
    # Loader functions
    "load_config",
    "parse_app_config",
    "load_environment_config",
    # Configuration models
    "AppConfig",
    "DocumentStoreConfig",
    "NotificationConfig",
    "BrokerConfig",
    "EmailConfig",
    "CrmConfig",
    "LoggingConfig",
    "EnvironmentConfig",
    # Enums
    "NotificationMode",
    "LogLevel",
    "LogFormat",
    # Exceptions
    "ConfigurationError",
]
