"""Abstract interfaces for message broker sessions."""

from abc import ABC, abstractmethod
from collections.abc import Iterable

from rabbit_bridge.domain import Message
from rabbit_bridge.stream import MessageStream


class MessagePublisher(ABC):
    """Abstract base class for publishing a stream of messages to a broker."""

    @abstractmethod
    def publish(self, messages: Iterable[Message]) -> None:
        """
        Publishes every message until the input is exhausted or closed.

        Args:
            messages: Messages to publish, each with its own routing key.

        Raises:
            MessagePublishError: If any publish fails.
        """


class MessageBroker(MessagePublisher, ABC):
    """Abstract base class for a broker session (publish + consume)."""

    @abstractmethod
    def consume(self, out: MessageStream) -> None:
        """
        Emits every delivery on ``out`` and acknowledges it afterwards.

        The stream is closed when the subscription ends.

        Args:
            out: Stream owned by the caller that receives consumed messages.

        Raises:
            SubscriptionError: If the subscription cannot be opened.
        """

    @abstractmethod
    def stop(self) -> None:
        """Asks a running consume to return. Must be safe from any thread."""

    @abstractmethod
    def close(self) -> None:
        """Closes the broker connection."""
