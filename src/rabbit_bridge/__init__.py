from rabbit_bridge.config import AppConfig, ArchiveConfig, RabbitMQConfig
from rabbit_bridge.domain import ROUTING_KEY_ATTRIBUTE, Message, MessageBuilder
from rabbit_bridge.exceptions import (
    ArchiveReadError,
    ArchiveWriteError,
    BridgeError,
    BrokerConnectionError,
    ChannelOpenError,
    EmptyQueueError,
    ExchangeDeclareError,
    MessagePublishError,
    MissingRoutingKeyError,
    QueueBindError,
    QueueDeclareError,
    StreamClosedError,
    SubscriptionError,
)
from rabbit_bridge.logging import setup_logging
from rabbit_bridge.stream import MessageStream

__all__ = [
    "setup_logging",
    "AppConfig",
    "ArchiveConfig",
    "RabbitMQConfig",
    "Message",
    "MessageBuilder",
    "MessageStream",
    "ROUTING_KEY_ATTRIBUTE",
    "ArchiveReadError",
    "ArchiveWriteError",
    "BridgeError",
    "BrokerConnectionError",
    "ChannelOpenError",
    "EmptyQueueError",
    "ExchangeDeclareError",
    "MessagePublishError",
    "MissingRoutingKeyError",
    "QueueBindError",
    "QueueDeclareError",
    "StreamClosedError",
    "SubscriptionError",
]
