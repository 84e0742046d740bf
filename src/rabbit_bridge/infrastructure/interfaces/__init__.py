"""Infrastructure interface exports."""

from rabbit_bridge.infrastructure.interfaces.message_archive import (
    MessageSink,
    MessageSource,
)
from rabbit_bridge.infrastructure.interfaces.message_broker import (
    MessageBroker,
    MessagePublisher,
)

__all__ = [
    "MessageBroker",
    "MessagePublisher",
    "MessageSink",
    "MessageSource",
]
