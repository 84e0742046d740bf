"""Worker that runs the publish and consume loops of the bridge."""

import logging
import queue
import threading
import time
from collections.abc import Callable
from pathlib import Path

from rabbit_bridge.exceptions import StreamClosedError
from rabbit_bridge.infrastructure.interfaces import (
    MessageBroker,
    MessageSink,
    MessageSource,
)
from rabbit_bridge.stream import MessageStream

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.5


class Worker:
    """
    Moves archived messages to the broker and consumed messages to archives.

    Every loop runs on its own daemon thread. Each direction is handed its own
    broker session, because a pika blocking connection must stay on one thread.
    """

    def __init__(
        self,
        publisher: MessageBroker | None = None,
        consumer: MessageBroker | None = None,
        reader: MessageSource | None = None,
        writer: MessageSink | None = None,
        input_path: Path | None = None,
        stream_size: int = 100,
        shutdown_timeout: float = 10.0,
    ):
        if publisher is not None and (reader is None or input_path is None):
            raise ValueError("publishing needs a reader and an input path")
        if consumer is not None and writer is None:
            raise ValueError("consuming needs a writer")
        self._publisher = publisher
        self._consumer = consumer
        self._reader = reader
        self._writer = writer
        self._input_path = input_path
        self._stream_size = stream_size
        self._shutdown_timeout = shutdown_timeout
        self._stopping = threading.Event()
        self._inbound: MessageStream | None = None
        self._outbound: MessageStream | None = None

    def start(self) -> None:
        """
        Runs every configured loop and waits for all of them to finish.

        Raises:
            Exception: The first error raised by any loop. The other loops
                are stopped and given ``shutdown_timeout`` seconds to finish
                before it is raised.
        """
        loops: list[tuple[str, Callable[[], object]]] = []

        if self._publisher is not None:
            inbound = self._inbound = MessageStream(self._stream_size)
            loops.append(("reader", lambda: self._fill(inbound)))
            loops.append(("publisher", lambda: self._publisher.publish(inbound)))

        if self._consumer is not None:
            outbound = self._outbound = MessageStream(self._stream_size)
            loops.append(("consumer", lambda: self._consumer.consume(outbound)))
            loops.append(("writer", lambda: self._writer.write(outbound)))

        if not loops:
            logger.warning("Nothing to do, neither publish nor consume is enabled")
            return

        done: queue.Queue = queue.Queue()
        for name, target in loops:
            thread = threading.Thread(
                target=self._run,
                args=(name, target, done),
                name=f"bridge-{name}",
                daemon=True,
            )
            thread.start()
        logger.info("Worker started", extra={"loops": [name for name, _ in loops]})

        if self._stopping.is_set():
            self._request_stop()

        remaining = len(loops)
        while remaining:
            # Short waits keep the main thread responsive to signal handlers.
            try:
                name, error = done.get(timeout=POLL_INTERVAL)
            except queue.Empty:
                continue
            remaining -= 1
            if error is not None:
                logger.error("Bridge loop failed", extra={"loop": name})
                self._abort()
                self._drain(done, remaining)
                raise error
            logger.info("Bridge loop finished", extra={"loop": name})

        logger.info("Worker finished")

    def shutdown(self) -> None:
        """
        Stops reading input and consuming, then lets in-flight messages drain.

        Messages already read are still published, and messages already
        consumed are still written, before ``start`` returns. Safe to call
        from a signal handler or another thread.
        """
        if self._stopping.is_set():
            return
        self._stopping.set()
        logger.info("Worker shutting down")
        self._request_stop()

    def _request_stop(self) -> None:
        if self._inbound is not None:
            self._inbound.close()
        if self._consumer is not None:
            self._consumer.stop()

    def _abort(self) -> None:
        self._stopping.set()
        for stream in (self._inbound, self._outbound):
            if stream is not None:
                stream.close()
        if self._consumer is not None:
            self._consumer.stop()

    def _drain(self, done: queue.Queue, remaining: int) -> None:
        deadline = time.monotonic() + self._shutdown_timeout
        while remaining:
            timeout = deadline - time.monotonic()
            if timeout <= 0:
                logger.warning(
                    "Bridge loops still running after shutdown timeout",
                    extra={"loops": remaining},
                )
                return
            try:
                name, error = done.get(timeout=min(timeout, POLL_INTERVAL))
            except queue.Empty:
                continue
            remaining -= 1
            if error is not None:
                logger.warning(
                    "Bridge loop failed during shutdown",
                    extra={"loop": name, "error": str(error)},
                )

    def _fill(self, stream: MessageStream) -> None:
        try:
            for message in self._reader.read(self._input_path):
                stream.put(message)
        except StreamClosedError:
            if not self._stopping.is_set():
                raise
            logger.info("Reader stopped before the end of its input")
        finally:
            stream.close()

    @staticmethod
    def _run(name: str, target: Callable[[], object], done: queue.Queue) -> None:
        try:
            target()
        except Exception as e:
            done.put((name, e))
        else:
            done.put((name, None))
