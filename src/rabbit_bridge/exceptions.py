"""Custom exceptions for the rabbit bridge."""

from urllib.parse import urlsplit


class BridgeError(Exception):
    """Base class for every error the bridge raises."""


class BrokerConnectionError(BridgeError):
    """Raised when dialing the broker fails."""

    def __init__(self, uri: str, cause: Exception | None = None):
        self.host = urlsplit(uri).hostname or uri
        self.cause = cause
        super().__init__(f"Failed to connect to RabbitMQ at '{self.host}'")


class ChannelOpenError(BridgeError):
    """Raised when a channel cannot be opened on the connection."""

    def __init__(self, cause: Exception | None = None):
        self.cause = cause
        super().__init__("Failed to open a channel on the RabbitMQ connection")


class ExchangeDeclareError(BridgeError):
    """Raised when the passive exchange declaration fails."""

    def __init__(self, exchange: str, cause: Exception | None = None):
        self.exchange = exchange
        self.cause = cause
        super().__init__(f"Exchange '{exchange}' is missing or does not match")


class QueueDeclareError(BridgeError):
    """Raised when the passive queue declaration fails."""

    def __init__(self, queue: str, cause: Exception | None = None):
        self.queue = queue
        self.cause = cause
        super().__init__(f"Queue '{queue}' is missing or does not match")


class EmptyQueueError(BridgeError):
    """Raised when the queue has no pending messages at bind time."""

    def __init__(self, queue: str):
        self.queue = queue
        super().__init__(f"No messages in RabbitMQ queue '{queue}'")


class QueueBindError(BridgeError):
    """Raised when binding the queue to the exchange fails."""

    def __init__(self, queue: str, exchange: str, cause: Exception | None = None):
        self.queue = queue
        self.exchange = exchange
        self.cause = cause
        super().__init__(f"Failed to bind queue '{queue}' to exchange '{exchange}'")


class SubscriptionError(BridgeError):
    """Raised when the consumer subscription cannot be opened."""

    def __init__(self, queue: str, cause: Exception | None = None):
        self.queue = queue
        self.cause = cause
        super().__init__(f"Failed to start consuming from queue '{queue}'")


class MessagePublishError(BridgeError):
    """Raised when publishing a message to the exchange fails."""

    def __init__(
        self, exchange: str, routing_key: str, cause: Exception | None = None
    ):
        self.exchange = exchange
        self.routing_key = routing_key
        self.cause = cause
        super().__init__(
            f"Failed to publish message to '{exchange}' with routing key '{routing_key}'"
        )


class MissingRoutingKeyError(BridgeError):
    """Raised when a message resolves to an empty routing key in strict mode."""

    def __init__(self, attribute: str):
        self.attribute = attribute
        super().__init__(
            f"Message has no '{attribute}' attribute and no routing key override"
        )


class StreamClosedError(BridgeError):
    """Raised when putting a message on a closed stream."""

    def __init__(self):
        super().__init__("Message stream is closed")


class ArchiveReadError(BridgeError):
    """Raised when a message archive cannot be read."""

    def __init__(self, path: str, cause: Exception | None = None):
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to read message archive '{path}'")


class ArchiveWriteError(BridgeError):
    """Raised when a message archive cannot be written."""

    def __init__(self, path: str, cause: Exception | None = None):
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to write message archive '{path}'")
