"""Mail notifier: e-mails the portfolio owner about each new document.

Owners are resolved through the CRM directory. ``prepare`` looks up every
portfolio of the run in one batched call; ``dispatch`` renders the owner
template and sends it over SMTP.
"""

import threading
from typing import Callable, Dict, Optional, Sequence

from docnotify.adapters.crm import CrmAdapter
from docnotify.config.environment import EnvironmentConfig
from docnotify.config.models import EmailConfig
from docnotify.domain.models import DocumentRecord, PortfolioOwner
from docnotify.logging import get_logger
from docnotify.utils.timestamps import utc_now

from .base import Notifier
from .models import DispatchResult, NotificationError, RecipientResolutionError
from .payloads import build_document_context
from .smtp_client import SMTPClient, build_message, build_sender_address, parse_recipients
from .templates import TemplateRenderer

logger = get_logger(__name__, component="mail")


class MailNotifier(Notifier):
    """Sends a personalised HTML e-mail to the owner of each document's portfolio."""

    name = "email"

    def __init__(
        self,
        email_config: EmailConfig,
        env_config: EnvironmentConfig,
        crm: CrmAdapter,
        smtp_client: Optional[SMTPClient] = None,
        renderer: Optional[TemplateRenderer] = None,
        clock: Callable = utc_now,
    ):
        self.email_config = email_config
        self.crm = crm
        self.smtp_client = smtp_client or SMTPClient(env_config, use_tls=email_config.use_tls)
        self.renderer = renderer or TemplateRenderer(custom_template_path=email_config.template_path)
        self.sender = build_sender_address(
            email_config.from_name, email_config.from_address, env_config
        )
        self._clock = clock
        self._owners: Dict[str, PortfolioOwner] = {}
        self._failures: Dict[str, str] = {}
        self._looked_up: set = set()
        self._lock = threading.Lock()

    def prepare(self, records: Sequence[DocumentRecord]) -> None:
        """Resolve the owners of every portfolio in ``records`` in one batched lookup."""
        portfolio_ids = [r.portfolio_id for r in records if r.portfolio_id]
        self._lookup(portfolio_ids)

    def dispatch(self, record: DocumentRecord) -> DispatchResult:
        try:
            recipient = self._send(record)
        except NotificationError as e:
            logger.error(
                f"Failed to send document notification for portfolio {record.portfolio_id}: {e}",
                extra={
                    "event": "mail.send.failed",
                    "document_id": record.document_id,
                    "portfolio_id": record.portfolio_id,
                    "error_type": type(e).__name__,
                },
            )
            return DispatchResult.failed(record.document_id, str(e))

        logger.info(
            f"Document notification sent to {recipient} for portfolio {record.portfolio_id}",
            extra={
                "event": "mail.send.succeeded",
                "document_id": record.document_id,
                "portfolio_id": record.portfolio_id,
            },
        )
        return DispatchResult.sent(record.document_id, recipient=recipient)

    def check(self) -> None:
        self.crm.ping()
        self.smtp_client.check()

    def close(self) -> None:
        self.crm.close()

    def resolve_owner(self, portfolio_id: Optional[str]) -> PortfolioOwner:
        """Return the owner of a portfolio, looking it up when not prepared.

        Raises:
            RecipientResolutionError: If the lookup failed or no owner exists
        """
        if not portfolio_id:
            raise RecipientResolutionError("Document has no portfolio id")

        with self._lock:
            prepared = portfolio_id in self._looked_up
        if not prepared:
            self._lookup([portfolio_id])

        with self._lock:
            if portfolio_id in self._failures:
                raise RecipientResolutionError(self._failures[portfolio_id])
            owner = self._owners.get(portfolio_id)

        if owner is None:
            raise RecipientResolutionError(f"No owner found for portfolio {portfolio_id}")
        return owner

    def _send(self, record: DocumentRecord) -> str:
        owner = self.resolve_owner(record.portfolio_id)

        address = owner.recipient_email
        if not address:
            raise RecipientResolutionError(
                f"No email address found for owner of portfolio {record.portfolio_id}"
            )
        try:
            recipients = parse_recipients([address])
        except ValueError as e:
            raise RecipientResolutionError(str(e)) from e

        context = build_document_context(record, owner, self._clock())
        html_body = self.renderer.render_document_notification(context)

        message = build_message(
            subject=f"New Document Available - Portfolio {record.portfolio_id}",
            sender=self.sender,
            recipients=recipients,
            html_body=html_body,
        )
        self.smtp_client.send(message)
        return recipients[0]

    def _lookup(self, portfolio_ids) -> None:
        with self._lock:
            pending = [p for p in dict.fromkeys(portfolio_ids) if p not in self._looked_up]
        if not pending:
            return

        lookup = self.crm.get_owners(pending)

        with self._lock:
            self._owners.update(lookup.owners)
            self._failures.update(lookup.failures)
            self._looked_up.update(pending)

        missing = [p for p in pending if p not in lookup.owners and p not in lookup.failures]
        if missing:
            logger.warning(
                f"No owner found for {len(missing)} portfolios",
                extra={"event": "mail.owner.missing", "portfolio_ids": missing},
            )
