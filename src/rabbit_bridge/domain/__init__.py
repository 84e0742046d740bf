"""Domain layer exports."""

from rabbit_bridge.domain.message_builder import ROUTING_KEY_ATTRIBUTE, MessageBuilder
from rabbit_bridge.domain.models import Message

__all__ = [
    "Message",
    "MessageBuilder",
    "ROUTING_KEY_ATTRIBUTE",
]
