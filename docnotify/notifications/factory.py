"""Selects the notifier strategy for a run from configuration."""

from docnotify.adapters.crm import CrmAdapter
from docnotify.config.environment import EnvironmentConfig
from docnotify.config.models import AppConfig
from docnotify.logging import get_logger

from .base import Notifier
from .broker import BrokerNotifier
from .mail import MailNotifier
from .templates import TemplateRenderer

logger = get_logger(__name__, component="notification")


def build_notifier(config: AppConfig, env_config: EnvironmentConfig) -> Notifier:
    """Build the notifier selected by ``notification.mode``.

    The choice is made once per run; every document of the run goes through
    the same strategy.
    """
    if config.uses_email_notification:
        crm = CrmAdapter(config.crm, client_secret=env_config.crm_client_secret)
        notifier: Notifier = MailNotifier(
            config.email,
            env_config,
            crm=crm,
            renderer=TemplateRenderer(custom_template_path=config.email.template_path),
        )
    else:
        notifier = BrokerNotifier(config.broker, env_config)

    logger.info(
        f"Using {notifier.name} notifier",
        extra={"event": "notifier.selected", "mode": notifier.name},
    )
    return notifier
