"""Template rendering for notifications using Jinja2.

Owner e-mails, run summaries, error alerts and broker message bodies are all
rendered from templates in the docnotify.notifications.email_templates
package. The owner e-mail template can be replaced by a file configured in
``email.template_path``.
"""

from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import (
    Environment,
    FileSystemLoader,
    PackageLoader,
    StrictUndefined,
    Template,
    TemplateError,
)

from docnotify.logging import get_logger

from .models import NotificationTemplateError

logger = get_logger(__name__, component="notification")

DOCUMENT_NOTIFICATION_TEMPLATE = "document_notification.html.j2"
SUMMARY_TEMPLATE = "processing_summary.html.j2"
ERROR_ALERT_TEMPLATE = "error_alert.html.j2"
BROKER_MESSAGE_TEMPLATE = "broker_message.xml.j2"


class TemplateRenderer:
    """Renders notification templates using Jinja2.

    Templates are compiled once and cached for reuse across dispatches; a
    single renderer is safe to share between worker threads.
    """

    def __init__(
        self,
        template_dir: str = "email_templates",
        custom_template_path: Optional[str] = None,
    ):
        """Initialize template renderer with Jinja2 environment.

        Args:
            template_dir: Directory name within docnotify.notifications package
            custom_template_path: Optional file replacing the owner e-mail
                template; the built-in template is used when it cannot be loaded
        """
        self.env = Environment(
            loader=PackageLoader("docnotify.notifications", template_dir),
            autoescape=True,
            undefined=StrictUndefined,
        )
        self.custom_template_path = custom_template_path
        self._document_template = self._load_document_template(custom_template_path)

        logger.debug(f"Initialized TemplateRenderer with templates from {template_dir}")

    @property
    def uses_custom_template(self) -> bool:
        return self._document_template is not None

    def render_document_notification(self, context: Dict[str, Any]) -> str:
        """Render the owner e-mail HTML body.

        Raises:
            NotificationTemplateError: If rendering fails
        """
        if self._document_template is not None:
            return self._render_template(self._document_template, context, "custom template")
        return self._render(DOCUMENT_NOTIFICATION_TEMPLATE, context)

    def render_summary(self, context: Dict[str, Any]) -> str:
        return self._render(SUMMARY_TEMPLATE, context)

    def render_error_alert(self, context: Dict[str, Any]) -> str:
        return self._render(ERROR_ALERT_TEMPLATE, context)

    def render_broker_message(self, context: Dict[str, Any]) -> str:
        return self._render(BROKER_MESSAGE_TEMPLATE, context).strip()

    def _render(self, template_name: str, context: Dict[str, Any]) -> str:
        try:
            template = self.env.get_template(template_name)
        except TemplateError as e:
            error_msg = f"Failed to load template {template_name}: {e}"
            logger.error(error_msg, exc_info=True)
            raise NotificationTemplateError(error_msg) from e
        return self._render_template(template, context, template_name)

    @staticmethod
    def _render_template(template: Template, context: Dict[str, Any], label: str) -> str:
        try:
            return template.render(context)
        except TemplateError as e:
            error_msg = f"Template rendering failed ({label}): {e}"
            logger.error(error_msg, exc_info=True)
            raise NotificationTemplateError(error_msg) from e
        except Exception as e:
            error_msg = f"Unexpected error during template rendering ({label}): {e}"
            logger.error(error_msg, exc_info=True)
            raise NotificationTemplateError(error_msg) from e

    def _load_document_template(self, path: Optional[str]) -> Optional[Template]:
        if not path:
            return None

        template_file = Path(path)
        try:
            custom_env = Environment(
                loader=FileSystemLoader(str(template_file.parent)),
                autoescape=True,
                undefined=StrictUndefined,
            )
            template = custom_env.get_template(template_file.name)
        except (TemplateError, OSError, UnicodeDecodeError) as e:
            logger.warning(
                f"Could not load custom template {path}, using built-in template: {e}",
                extra={
                    "event": "notification.template.fallback",
                    "template_path": path,
                    "error_type": type(e).__name__,
                },
            )
            return None

        logger.info(
            f"Loaded custom e-mail template from {path}",
            extra={"event": "notification.template.loaded", "template_path": path},
        )
        return template
