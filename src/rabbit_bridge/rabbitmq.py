import logging

import pika

from rabbit_bridge.exceptions import BrokerConnectionError, ChannelOpenError

logger = logging.getLogger(__name__)


def get_rabbit_channel(uri: str, connection_factory=pika.BlockingConnection):
    """
    Establishes a new blocking connection to RabbitMQ and returns a channel.

    Blocked and unblocked notifications from the broker are only logged.

    Args:
        uri (str): AMQP connection URI.
        connection_factory: Callable building a connection from parameters.

    Returns:
        tuple: (connection, channel)

    Raises:
        BrokerConnectionError: If the broker cannot be reached.
        ChannelOpenError: If the channel cannot be opened.
    """
    try:
        parameters = pika.URLParameters(uri)
        connection = connection_factory(parameters)
    except Exception as e:
        logger.exception("Failed to connect to RabbitMQ")
        raise BrokerConnectionError(uri, e) from e

    connection.add_on_connection_blocked_callback(_on_blocked)
    connection.add_on_connection_unblocked_callback(_on_unblocked)

    try:
        channel = connection.channel()
    except Exception as e:
        logger.exception("Failed to open a RabbitMQ channel")
        raise ChannelOpenError(e) from e

    return connection, channel


def _on_blocked(connection, method_frame):
    logger.warning(
        "Connection blocked by RabbitMQ",
        extra={"reason": getattr(method_frame.method, "reason", "")},
    )


def _on_unblocked(connection, method_frame):
    logger.info("Connection unblocked by RabbitMQ")
