"""Builds the bridge components from configuration."""

from rabbit_bridge.config import AppConfig
from rabbit_bridge.domain import MessageBuilder
from rabbit_bridge.infrastructure import (
    RabbitMQSession,
    TarballReader,
    TarballWriter,
    open_session,
)
from rabbit_bridge.worker import Worker


def get_builder(config: AppConfig) -> MessageBuilder:
    """Returns the message builder."""
    return MessageBuilder(require_routing_key=config.require_routing_key)


def get_reader(config: AppConfig) -> TarballReader:
    """Returns the archive reader, applying the configured routing key override."""
    return TarballReader(get_builder(config), config.rabbitmq.routing_key)


def get_writer(config: AppConfig) -> TarballWriter:
    """Returns the archive writer."""
    return TarballWriter(
        config.archive.output_directory,
        config.archive.batch_size,
        flush_interval=config.archive.flush_interval,
    )


def get_sessions(
    config: AppConfig, connection_factory=None
) -> tuple[RabbitMQSession | None, RabbitMQSession | None]:
    """
    Opens one broker session per enabled direction.

    Returns:
        Tuple of (publisher session, consumer session); either may be None.
    """
    publisher = None
    consumer = None
    if config.rabbitmq.publish:
        publisher = open_session(
            config.rabbitmq.model_copy(update={"consume": False}), connection_factory
        )
    if config.rabbitmq.consume:
        try:
            consumer = open_session(
                config.rabbitmq.model_copy(update={"publish": False}),
                connection_factory,
            )
        except Exception:
            if publisher is not None:
                publisher.close()
            raise
    return publisher, consumer


def get_worker(
    config: AppConfig,
    publisher: RabbitMQSession | None,
    consumer: RabbitMQSession | None,
) -> Worker:
    """Returns the worker wired to the given sessions."""
    return Worker(
        publisher=publisher,
        consumer=consumer,
        reader=get_reader(config) if publisher is not None else None,
        writer=get_writer(config) if consumer is not None else None,
        input_path=config.archive.input_path,
        stream_size=config.stream_size,
    )
