"""RabbitMQ broker session implementation."""

import logging
import threading
from collections.abc import Iterable

import pika
from pika.adapters.blocking_connection import BlockingChannel, BlockingConnection
from pika.exceptions import AMQPConnectionError, ChannelClosed

from rabbit_bridge.config import RabbitMQConfig
from rabbit_bridge.domain import Message
from rabbit_bridge.exceptions import (
    BridgeError,
    EmptyQueueError,
    ExchangeDeclareError,
    MessagePublishError,
    QueueBindError,
    QueueDeclareError,
    StreamClosedError,
    SubscriptionError,
)
from rabbit_bridge.infrastructure.interfaces import MessageBroker
from rabbit_bridge.rabbitmq import get_rabbit_channel
from rabbit_bridge.stream import MessageStream

logger = logging.getLogger(__name__)

CONTENT_TYPE = "application/json"
CONTENT_ENCODING = "UTF-8"
BIND_ALL = "#"


class RabbitMQSession(MessageBroker):
    """Broker session publishing to a topic exchange and consuming a queue."""

    def __init__(
        self,
        connection: BlockingConnection,
        channel: BlockingChannel,
        config: RabbitMQConfig,
    ):
        self._connection = connection
        self._channel = channel
        self._config = config
        self.content_type = CONTENT_TYPE
        self.content_encoding = CONTENT_ENCODING
        self._stop_requested = threading.Event()
        self._consuming = False

    @property
    def exchange(self) -> str:
        return self._config.exchange

    @property
    def queue(self) -> str:
        return self._config.queue

    def setup(self) -> None:
        """
        Verifies the exchange and queue exist and binds them together.

        Declarations are passive, so nothing is created on the broker.

        Raises:
            ExchangeDeclareError: If publishing and the exchange is missing.
            QueueDeclareError: If consuming and the queue is missing.
            EmptyQueueError: If consuming a queue with no pending messages.
            QueueBindError: If the queue cannot be bound to the exchange.
        """
        if self._config.publish:
            try:
                self._channel.exchange_declare(
                    exchange=self._config.exchange,
                    exchange_type="topic",
                    passive=True,
                    durable=True,
                    auto_delete=False,
                    internal=False,
                )
            except Exception as e:
                logger.exception(
                    "Exchange declare failed",
                    extra={"exchange": self._config.exchange},
                )
                raise ExchangeDeclareError(self._config.exchange, e) from e

        if self._config.consume:
            self._setup_queue()

    def _setup_queue(self) -> None:
        queue = self._config.queue
        try:
            frame = self._channel.queue_declare(
                queue=queue,
                passive=True,
                durable=True,
                exclusive=False,
                auto_delete=False,
            )
        except Exception as e:
            logger.exception("Queue declare failed", extra={"queue": queue})
            raise QueueDeclareError(queue, e) from e

        message_count = frame.method.message_count
        if message_count == 0 and self._config.require_backlog:
            raise EmptyQueueError(queue)

        try:
            self._channel.queue_bind(
                queue=queue,
                exchange=self._config.exchange,
                routing_key=BIND_ALL,
            )
        except Exception as e:
            logger.exception(
                "Queue bind failed",
                extra={"queue": queue, "exchange": self._config.exchange},
            )
            raise QueueBindError(queue, self._config.exchange, e) from e

        if self._config.prefetch > 0:
            self._channel.basic_qos(prefetch_count=self._config.prefetch)

        logger.info(
            "Queue bound to exchange",
            extra={
                "exchange": self._config.exchange,
                "queue": queue,
                "messages_waiting": message_count,
            },
        )

    def publish(self, messages: Iterable[Message]) -> None:
        """
        Publishes each message with its own routing key and headers.

        Args:
            messages: Messages to publish, read until exhausted.

        Raises:
            MessagePublishError: If publishing fails.
        """
        published = 0
        for message in messages:
            try:
                self._channel.basic_publish(
                    exchange=self._config.exchange,
                    routing_key=message.routing_key,
                    body=message.body,
                    properties=pika.BasicProperties(
                        headers=message.headers,
                        content_type=self.content_type,
                        content_encoding=self.content_encoding,
                        delivery_mode=pika.DeliveryMode.Persistent,
                    ),
                    mandatory=False,
                )
            except Exception as e:
                logger.exception(
                    "Failed to publish message",
                    extra={"routing_key": message.routing_key},
                )
                raise MessagePublishError(
                    self._config.exchange, message.routing_key, e
                ) from e
            published += 1

        logger.info(
            "All messages published",
            extra={"exchange": self._config.exchange, "count": published},
        )

    def consume(self, out: MessageStream) -> None:
        """
        Streams queue deliveries into ``out``, acknowledging each one after.

        Ends when the consumer is cancelled, ``stop`` is called, the channel
        or connection is lost, or ``out`` is closed under it. ``out`` is
        always closed on the way out.

        Args:
            out: Stream receiving the consumed messages.

        Raises:
            SubscriptionError: If the subscription cannot be opened.
        """
        self._consuming = True
        try:
            self._subscribe(out)
            if not self._stop_requested.is_set():
                self._channel.start_consuming()
        except (ChannelClosed, AMQPConnectionError) as e:
            logger.warning("RabbitMQ subscription closed", extra={"reason": str(e)})
        except StreamClosedError:
            # The pending delivery stays unacked and is redelivered.
            logger.warning(
                "Output stream closed while consuming",
                extra={"queue": self._config.queue},
            )
        finally:
            self._consuming = False
            out.close()

        logger.info("All messages consumed", extra={"queue": self._config.queue})

    def stop(self) -> None:
        """
        Asks a running ``consume`` to return. Safe to call from any thread.

        The request is handed to the connection's own thread, which cancels
        the consumer so ``start_consuming`` returns.
        """
        self._stop_requested.set()
        try:
            self._connection.add_callback_threadsafe(self._channel.stop_consuming)
        except AMQPConnectionError as e:
            logger.info("RabbitMQ connection already closed", extra={"reason": str(e)})

    def _subscribe(self, out: MessageStream) -> None:
        def on_message(ch, method, properties, body):
            message = Message(
                body=body,
                routing_key=method.routing_key,
                headers=properties.headers or {},
            )
            out.put(message)
            ch.basic_ack(delivery_tag=method.delivery_tag, multiple=False)

        self._channel.add_on_cancel_callback(self._on_cancel)
        try:
            self._channel.basic_consume(
                queue=self._config.queue,
                on_message_callback=on_message,
                auto_ack=False,
                exclusive=False,
                consumer_tag=self._config.consumer_tag or None,
            )
        except Exception as e:
            logger.exception(
                "RabbitMQ consumer failed", extra={"queue": self._config.queue}
            )
            raise SubscriptionError(self._config.queue, e) from e

        logger.info(
            "Started consuming",
            extra={
                "queue": self._config.queue,
                "consumer_tag": self._config.consumer_tag,
            },
        )

    def _on_cancel(self, method_frame):
        logger.warning(
            "Consumer cancelled by RabbitMQ",
            extra={"consumer_tag": method_frame.method.consumer_tag},
        )

    def close(self) -> None:
        """
        Closes the connection if it is still open.

        A connection still driving ``consume`` belongs to that thread, so
        in that case only a stop is requested.
        """
        if self._consuming:
            logger.warning(
                "Consume loop still running, requesting stop instead of close",
                extra={"queue": self._config.queue},
            )
            self.stop()
            return
        if self._connection.is_open:
            self._connection.close()
        logger.info(
            "RabbitMQ connection closed", extra={"exchange": self._config.exchange}
        )


def open_session(config: RabbitMQConfig, connection_factory=None) -> RabbitMQSession:
    """
    Dials the broker, opens a channel and prepares the exchange and queue.

    Args:
        config: Session configuration.
        connection_factory: Optional replacement for ``pika.BlockingConnection``.

    Returns:
        A ready RabbitMQSession.
    """
    connection, channel = get_rabbit_channel(
        config.uri, connection_factory or pika.BlockingConnection
    )

    session = RabbitMQSession(connection, channel, config)
    try:
        session.setup()
    except BridgeError:
        session.close()
        raise
    logger.info(
        "RabbitMQ connected",
        extra={
            "exchange": config.exchange,
            "consume": config.consume,
            "publish": config.publish,
        },
    )
    return session
