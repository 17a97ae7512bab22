"""RabbitMQ channel built on pika's asynchronous SelectConnection."""

from __future__ import annotations

from typing import Any, Callable

import pika
import structlog
from pika.exchange_type import ExchangeType

from ..config import AmqpConfig
from ..errors import TransientError
from ..logging_conf import component_logger
from .channel import BrokerChannel

PERSISTENT_DELIVERY_MODE = 2
TRANSIENT_DELIVERY_MODE = 1


class AmqpChannel(BrokerChannel):
    """Publish to a durable topic exchange with publisher confirms enabled.

    Delivery tags are numbered from 1 in publish order, matching the tags
    the broker uses in its confirmations on a confirm-mode channel.
    """

    def __init__(
        self,
        config: AmqpConfig,
        logger: structlog.BoundLogger | None = None,
        connection_factory: Callable[..., Any] = pika.SelectConnection,
    ) -> None:
        super().__init__()
        self.config = config
        self.logger = logger or component_logger("amqp")
        self._connection_factory = connection_factory
        self._connection: Any = None
        self._channel: Any = None
        self._on_ready: Callable[[], None] | None = None
        self._message_number = 0
        self._closing = False
        self._open_error: Exception | None = None

    @property
    def ready(self) -> bool:
        return self._channel is not None and self._channel.is_open

    def connect(self, on_ready: Callable[[], None]) -> None:
        """Open the connection; ``on_ready`` runs once confirms are enabled."""

        self._on_ready = on_ready
        parameters = pika.ConnectionParameters(
            host=self.config.host,
            port=self.config.port,
            virtual_host=self.config.virtual_host,
            credentials=pika.PlainCredentials(self.config.username, self.config.password),
        )
        self._connection = self._connection_factory(
            parameters=parameters,
            on_open_callback=self._on_connection_open,
            on_open_error_callback=self._on_connection_open_error,
            on_close_callback=self._on_connection_closed,
        )

    def run(self) -> None:
        """Block on the IO loop until the connection is closed."""

        self._connection.ioloop.start()
        if self._open_error is not None:
            raise TransientError(f"Cannot connect to broker {self.config.host}:{self.config.port}: {self._open_error}")

    # ------------------------------------------------------------------
    def publish(self, payload: str, routing_key: str, persistent: bool = True) -> int:
        properties = pika.BasicProperties(
            content_type="application/json",
            delivery_mode=PERSISTENT_DELIVERY_MODE if persistent else TRANSIENT_DELIVERY_MODE,
        )
        self._channel.basic_publish(
            exchange=self.config.exchange,
            routing_key=routing_key,
            body=payload.encode("utf-8"),
            properties=properties,
        )
        self._message_number += 1
        return self._message_number

    def call_soon(self, callback: Callable[[], None]) -> None:
        self._connection.ioloop.add_callback_threadsafe(callback)

    def close(self) -> None:
        if self._closing or self._connection is None:
            return
        self._closing = True
        if self._connection.is_closing or self._connection.is_closed:
            self._connection.ioloop.stop()
        else:
            self.logger.info("amqp_closing", published=self._message_number)
            self._connection.close()

    # ------------------------------------------------------------------
    # pika callbacks
    # ------------------------------------------------------------------
    def _on_connection_open(self, connection: Any) -> None:
        self.logger.debug("amqp_connection_open", host=self.config.host)
        connection.channel(on_open_callback=self._on_channel_open)

    def _on_connection_open_error(self, connection: Any, error: Exception) -> None:
        self.logger.error("amqp_connection_failed", host=self.config.host, error=str(error))
        self._open_error = error
        connection.ioloop.stop()

    def _on_connection_closed(self, connection: Any, reason: Exception) -> None:
        self._channel = None
        if self._closing:
            self.logger.debug("amqp_connection_closed")
        else:
            self.logger.warning("amqp_connection_lost", reason=str(reason))
        connection.ioloop.stop()

    def _on_channel_open(self, channel: Any) -> None:
        self._channel = channel
        channel.add_on_close_callback(self._on_channel_closed)
        channel.exchange_declare(
            exchange=self.config.exchange,
            exchange_type=ExchangeType.topic,
            durable=True,
            auto_delete=False,
            callback=self._on_exchange_declared,
        )

    def _on_channel_closed(self, channel: Any, reason: Exception) -> None:
        self._channel = None
        if not self._closing:
            self.logger.warning("amqp_channel_closed", reason=str(reason))
            self.close()

    def _on_exchange_declared(self, _frame: Any) -> None:
        self._channel.confirm_delivery(
            ack_nack_callback=self._on_delivery_confirmation,
            callback=self._on_confirm_selected,
        )

    def _on_confirm_selected(self, _frame: Any) -> None:
        self.logger.debug("amqp_ready", exchange=self.config.exchange)
        if self._on_ready is not None:
            self._on_ready()

    def _on_delivery_confirmation(self, method_frame: Any) -> None:
        method = method_frame.method
        if isinstance(method, pika.spec.Basic.Nack):
            self.dispatch_nack(method.delivery_tag, bool(method.multiple))
        else:
            self.dispatch_ack(method.delivery_tag, bool(method.multiple))


__all__ = ["AmqpChannel"]
