"""Builds messages from raw payloads and attribute mappings."""

from collections.abc import Mapping

from rabbit_bridge.exceptions import MissingRoutingKeyError

from .models import Message

ROUTING_KEY_ATTRIBUTE = "amqp.routingKey"


class MessageBuilder:
    """Turns a payload plus its attributes into a Message."""

    def __init__(self, require_routing_key: bool = False):
        self._require_routing_key = require_routing_key

    def build(
        self,
        payload: bytes,
        attributes: Mapping[str, str],
        routing_key_override: str = "",
    ) -> Message:
        """
        Builds a message, extracting the routing key from the attributes.

        The ``amqp.routingKey`` attribute is never copied into the headers.
        A non-empty override wins over the attribute value. Without either,
        the routing key is the empty string unless the builder is strict.

        Args:
            payload: Raw message body.
            attributes: Flat string attributes of the payload.
            routing_key_override: Routing key to use instead of the attribute.

        Returns:
            The built Message.

        Raises:
            MissingRoutingKeyError: If strict and no routing key resolves.
        """
        headers = {}
        routing_key = routing_key_override
        for key, value in attributes.items():
            if key == ROUTING_KEY_ATTRIBUTE:
                if not routing_key_override:
                    routing_key = value
            else:
                headers[key] = value

        if self._require_routing_key and not routing_key:
            raise MissingRoutingKeyError(ROUTING_KEY_ATTRIBUTE)

        return Message(body=payload, routing_key=routing_key, headers=headers)
