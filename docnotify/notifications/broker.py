"""Broker notifier: publishes one AMQP message per document.

The message body is a ``<Communication>`` request carrying the configured
template id and the document's portfolio id. Messages are published
persistent and mandatory on a channel with publisher confirms, so an
unroutable or nacked message surfaces as a dispatch failure.
"""

import ssl
import threading
from typing import Callable, Optional

import pika
from pika.exceptions import AMQPError, NackError, UnroutableError

from docnotify.config.environment import EnvironmentConfig
from docnotify.config.models import BrokerConfig
from docnotify.domain.models import DocumentRecord
from docnotify.logging import get_logger
from docnotify.utils.timestamps import timestamp_to_unix, utc_now

from .base import Notifier
from .models import BrokerPublishError, DispatchResult
from .templates import TemplateRenderer

logger = get_logger(__name__, component="broker")

PERSISTENT_DELIVERY_MODE = 2


def build_connection_parameters(
    config: BrokerConfig, env_config: EnvironmentConfig
) -> pika.ConnectionParameters:
    """Translate broker settings into pika connection parameters."""
    credentials = pika.PlainCredentials(
        env_config.broker_username or "guest",
        env_config.broker_password or "guest",
    )

    ssl_options = None
    if config.use_ssl:
        context = ssl.create_default_context()
        context.minimum_version = ssl.TLSVersion.TLSv1_2
        if config.certificate_path:
            context.load_cert_chain(config.certificate_path)
        ssl_options = pika.SSLOptions(context, config.ssl_server_name or config.host)

    return pika.ConnectionParameters(
        host=config.host,
        port=config.port,
        virtual_host=config.virtual_host,
        credentials=credentials,
        ssl_options=ssl_options,
    )


class BrokerNotifier(Notifier):
    """Publishes document notifications to a message broker."""

    name = "broker"

    def __init__(
        self,
        config: BrokerConfig,
        env_config: EnvironmentConfig,
        renderer: Optional[TemplateRenderer] = None,
        connection_factory: Optional[Callable[[], object]] = None,
    ):
        """
        Args:
            config: Broker settings
            env_config: Environment configuration with broker credentials
            renderer: Template renderer for the message body
            connection_factory: Callable returning an open blocking connection
                (defaults to pika.BlockingConnection with the configured parameters)
        """
        self.config = config
        self.renderer = renderer or TemplateRenderer()
        self._connection_factory = connection_factory or (
            lambda: pika.BlockingConnection(build_connection_parameters(config, env_config))
        )
        self._connection = None
        self._channel = None
        # pika's BlockingConnection is not thread-safe
        self._lock = threading.Lock()

    def render_body(self, portfolio_id: str) -> str:
        return self.renderer.render_broker_message(
            {"template_id": self.config.template_id, "portfolio_id": portfolio_id}
        )

    def build_properties(self) -> pika.BasicProperties:
        return pika.BasicProperties(
            delivery_mode=PERSISTENT_DELIVERY_MODE,
            timestamp=timestamp_to_unix(utc_now()),
            content_type="application/xml",
            content_encoding="utf-8",
            headers={
                "$tenantid": self.config.tenant_id,
                "$operation": self.config.operation,
                "$application": self.config.application,
            },
        )

    def dispatch(self, record: DocumentRecord) -> DispatchResult:
        if not record.portfolio_id:
            return DispatchResult.failed(record.document_id, "Document has no portfolio id")

        try:
            self.publish(record.portfolio_id)
        except BrokerPublishError as e:
            logger.error(
                f"Failed to publish document notification for portfolio {record.portfolio_id}: {e}",
                extra={
                    "event": "broker.publish.failed",
                    "document_id": record.document_id,
                    "portfolio_id": record.portfolio_id,
                },
            )
            return DispatchResult.failed(record.document_id, str(e))

        logger.info(
            f"Published document notification for portfolio {record.portfolio_id}",
            extra={
                "event": "broker.publish.succeeded",
                "document_id": record.document_id,
                "portfolio_id": record.portfolio_id,
            },
        )
        return DispatchResult.sent(record.document_id, recipient=self.config.routing_key)

    def publish(self, portfolio_id: str) -> None:
        """Publish the notification message for one portfolio.

        Raises:
            BrokerPublishError: If the message is unroutable, nacked, or the
                connection fails
        """
        body = self.render_body(portfolio_id).encode("utf-8")

        with self._lock:
            try:
                channel = self._get_channel()
                channel.basic_publish(
                    exchange=self.config.exchange,
                    routing_key=self.config.routing_key,
                    body=body,
                    properties=self.build_properties(),
                    mandatory=True,
                )
            except UnroutableError as e:
                raise BrokerPublishError(
                    f"Message for portfolio {portfolio_id} was returned as unroutable "
                    f"(exchange={self.config.exchange}, routing_key={self.config.routing_key})"
                ) from e
            except NackError as e:
                raise BrokerPublishError(
                    f"Broker rejected message for portfolio {portfolio_id}"
                ) from e
            except (AMQPError, OSError) as e:
                self._reset()
                raise BrokerPublishError(f"Broker publish failed: {type(e).__name__}: {e}") from e

    def check(self) -> None:
        with self._lock:
            try:
                self._get_channel()
            except (AMQPError, OSError) as e:
                self._reset()
                raise BrokerPublishError(f"Broker unreachable: {type(e).__name__}: {e}") from e

    def close(self) -> None:
        with self._lock:
            if self._connection is not None and self._connection.is_open:
                try:
                    self._connection.close()
                except (AMQPError, OSError) as e:
                    logger.warning(f"Error closing broker connection: {e}")
            self._connection = None
            self._channel = None

    def _get_channel(self):
        if self._connection is None or not self._connection.is_open:
            self._connection = self._connection_factory()
            self._channel = None
            logger.info(
                f"Created broker connection to {self.config.host}:{self.config.port}",
                extra={"event": "broker.connection.opened", "host": self.config.host},
            )

        if self._channel is None or not self._channel.is_open:
            self._channel = self._connection.channel()
            self._channel.confirm_delivery()

        return self._channel

    def _reset(self) -> None:
        connection = self._connection
        self._connection = None
        self._channel = None
        if connection is not None and connection.is_open:
            try:
                connection.close()
            except (AMQPError, OSError):
                logger.debug("Ignoring error while closing failed broker connection")
