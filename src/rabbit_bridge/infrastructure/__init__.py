"""Infrastructure layer exports."""

from rabbit_bridge.infrastructure.rabbitmq_session import RabbitMQSession, open_session
from rabbit_bridge.infrastructure.tarball_archive import TarballReader, TarballWriter

__all__ = [
    "RabbitMQSession",
    "TarballReader",
    "TarballWriter",
    "open_session",
]
