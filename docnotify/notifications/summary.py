"""Run summary and error alert e-mails.

Both are best-effort: every failure is logged and swallowed so that
reporting never changes the outcome of a run.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional

from docnotify.config.environment import EnvironmentConfig
from docnotify.config.models import EmailConfig
from docnotify.logging import get_logger
from docnotify.utils.timestamps import utc_now

from .payloads import build_error_alert_context, build_summary_context
from .smtp_client import SMTPClient, build_message, build_sender_address, parse_recipients
from .templates import TemplateRenderer

logger = get_logger(__name__, component="summary")

SUBJECT_PREFIX = "[Document Notification Service]"


@dataclass
class SummaryOptions:
    """Caller overrides for summary delivery.

    ``None`` means "use the configured default".
    """

    skip_summary: Optional[bool] = None
    failures_only: Optional[bool] = None


def summary_subject(error_count: int) -> str:
    subject = f"{SUBJECT_PREFIX} Document Processing Complete"
    if error_count > 0:
        subject += f" with {error_count} Errors"
    return subject


class SummaryReporter:
    """Sends run summaries and error alerts to the configured recipients."""

    def __init__(
        self,
        email_config: EmailConfig,
        env_config: EnvironmentConfig,
        smtp_client: Optional[SMTPClient] = None,
        renderer: Optional[TemplateRenderer] = None,
        clock: Callable = utc_now,
    ):
        self.email_config = email_config
        self.smtp_client = smtp_client or SMTPClient(env_config, use_tls=email_config.use_tls)
        self.renderer = renderer or TemplateRenderer()
        self.sender = build_sender_address(
            email_config.from_name, email_config.from_address, env_config
        )
        self._clock = clock

    def should_send(self, processed_count: int, error_count: int, options: SummaryOptions) -> bool:
        skip = (
            options.skip_summary
            if options.skip_summary is not None
            else not self.email_config.send_summary_email
        )
        failures_only = (
            options.failures_only
            if options.failures_only is not None
            else self.email_config.send_failures_only
        )

        if skip:
            return False
        if failures_only and error_count == 0:
            return False
        if processed_count == 0 and error_count == 0:
            return False
        return True

    def send_summary(self, result, operation: str, options: Optional[SummaryOptions] = None) -> bool:
        """Send the summary for a finished run.

        Args:
            result: ProcessingResult of the run
            operation: "process" or "retry"
            options: Caller overrides for the configured summary settings

        Returns:
            True if an e-mail was sent
        """
        options = options or SummaryOptions()
        if not self.should_send(result.processed_count, result.error_count, options):
            logger.debug(
                "Summary e-mail skipped",
                extra={"event": "summary.skipped", "operation": operation},
            )
            return False

        try:
            html_body = self.renderer.render_summary(
                build_summary_context(
                    operation=operation,
                    processed_count=result.processed_count,
                    error_count=result.error_count,
                    errors=result.errors,
                    now=self._clock(),
                    dry_run=result.dry_run,
                )
            )
            text_body = _summary_text(result.processed_count, result.error_count, result.errors)
            return self._send(summary_subject(result.error_count), html_body, text_body, "summary")
        except Exception as e:
            logger.error(
                f"Failed to send processing summary: {e}",
                exc_info=True,
                extra={"event": "summary.failed", "operation": operation},
            )
            return False

    def send_error_alert(self, subject: str, details: str, exc: Optional[BaseException] = None) -> bool:
        """Send an error alert for a fatal failure.

        Returns:
            True if an e-mail was sent
        """
        try:
            html_body = self.renderer.render_error_alert(
                build_error_alert_context(subject, details, exc, self._clock())
            )
            return self._send(f"{SUBJECT_PREFIX} {subject}", html_body, details, "error_alert")
        except Exception as e:
            logger.error(
                f"Failed to send error alert: {e}",
                exc_info=True,
                extra={"event": "error_alert.failed"},
            )
            return False

    def _send(self, subject: str, html_body: str, text_body: str, kind: str) -> bool:
        if not self.email_config.recipients:
            logger.warning(
                f"No recipients configured, {kind} e-mail not sent",
                extra={"event": f"{kind}.skipped", "reason": "no_recipients"},
            )
            return False
        if not self.smtp_client.configured:
            logger.warning(
                f"SMTP not configured, {kind} e-mail not sent",
                extra={"event": f"{kind}.skipped", "reason": "smtp_not_configured"},
            )
            return False

        recipients = parse_recipients(self.email_config.recipients)
        message = build_message(subject, self.sender, recipients, html_body, text_body)
        self.smtp_client.send(message)

        logger.info(
            f"Sent {kind} e-mail to {len(recipients)} recipients",
            extra={"event": f"{kind}.sent", "recipients": recipients},
        )
        return True


def _summary_text(processed_count: int, error_count: int, errors: List[str]) -> str:
    lines = [
        f"Documents Processed: {processed_count}",
        f"Errors Encountered: {error_count}",
    ]
    if errors:
        lines.append("")
        lines.append("Error Details:")
        lines.extend(f"- {error}" for error in errors)
    return "\n".join(lines)
