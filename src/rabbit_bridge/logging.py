import logging
import sys

from pythonjsonlogger import jsonlogger


def setup_logging(level: str = "INFO"):
    """
    Configures and sets up structured JSON logging for the bridge.

    This function initializes a JSON formatter that includes timestamp, level,
    logger name, message, trace_id, and span_id. It replaces the default
    handlers of the root logger with a stdout stream handler and caps the
    pika client loggers at WARNING, since pika logs every frame at INFO.

    Args:
        level: Log level name for the root logger.

    Returns:
        logging.Logger: The configured root logger instance.
    """
    formatter = jsonlogger.JsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s %(trace_id)s %(span_id)s"
    )
    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())
    root_logger.handlers = []
    root_logger.addHandler(stream_handler)

    logging.getLogger("pika").setLevel(logging.WARNING)

    return root_logger
