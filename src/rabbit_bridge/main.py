"""
Rabbit Bridge.

Moves messages between tarball archives and a RabbitMQ topic exchange.
It handles:
- Publishing archived messages to an exchange (BRIDGE_PUBLISH).
- Draining a queue into batched tarballs (BRIDGE_CONSUME).
- Graceful shutdown on SIGINT and SIGTERM.
- Distributed tracing with Datadog.
- Structured JSON logging.
"""

import logging
import os
import signal
import sys

from ddtrace import patch_all
from pydantic import ValidationError

from rabbit_bridge.config import load_config
from rabbit_bridge.dependencies import get_sessions, get_worker
from rabbit_bridge.exceptions import BridgeError
from rabbit_bridge.logging import setup_logging
from rabbit_bridge.worker import Worker

logger = logging.getLogger(__name__)


def install_signal_handlers(worker: Worker) -> None:
    """Shuts the worker down gracefully on SIGINT and SIGTERM."""

    def handle_signal(signum, frame):
        logger.info(
            "Received shutdown signal", extra={"signal": signal.Signals(signum).name}
        )
        worker.shutdown()

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, handle_signal)


def main():
    """Starts the bridge and exits non-zero on any bridge failure."""
    setup_logging(os.getenv("LOG_LEVEL", "INFO"))
    try:
        config = load_config()
    except ValidationError as e:
        logger.critical("Invalid configuration", extra={"error": str(e)})
        sys.exit(1)
    patch_all()

    logger.info(
        "Starting rabbit-bridge",
        extra={
            "exchange": config.rabbitmq.exchange,
            "publish": config.rabbitmq.publish,
            "consume": config.rabbitmq.consume,
        },
    )
    publisher = consumer = None
    try:
        publisher, consumer = get_sessions(config)
        worker = get_worker(config, publisher, consumer)
        install_signal_handlers(worker)
        worker.start()
    except BridgeError as e:
        logger.critical(str(e), extra={"error": type(e).__name__})
        sys.exit(1)
    finally:
        for session in (publisher, consumer):
            if session is not None:
                session.close()

    logger.info("rabbit-bridge finished")


if __name__ == "__main__":
    main()
