"""Closable in-process message stream shared between bridge loops."""

import threading
from collections import deque
from collections.abc import Iterator

from rabbit_bridge.domain import Message
from rabbit_bridge.exceptions import StreamClosedError


class MessageStream:
    """
    Thread-safe FIFO of messages that can be closed by its producer.

    Iterating the stream blocks until a message is available and stops once
    the stream is closed and every queued message has been taken.

    Args:
        maxsize: Maximum number of queued messages, 0 for unbounded.
    """

    def __init__(self, maxsize: int = 0):
        self._maxsize = maxsize
        self._items: deque[Message] = deque()
        self._closed = False
        self._lock = threading.Lock()
        self._not_empty = threading.Condition(self._lock)
        self._not_full = threading.Condition(self._lock)

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, message: Message) -> None:
        """
        Appends a message, blocking while the stream is full.

        Raises:
            StreamClosedError: If the stream is closed before the put lands.
        """
        with self._not_full:
            while (
                not self._closed
                and self._maxsize > 0
                and len(self._items) >= self._maxsize
            ):
                self._not_full.wait()
            if self._closed:
                raise StreamClosedError()
            self._items.append(message)
            self._not_empty.notify()

    def close(self) -> None:
        """Closes the stream and wakes every waiting producer and consumer."""
        with self._lock:
            self._closed = True
            self._not_empty.notify_all()
            self._not_full.notify_all()

    def __iter__(self) -> Iterator[Message]:
        for message in self.iter_idle(None):
            if message is not None:
                yield message

    def iter_idle(self, timeout: float | None) -> Iterator[Message | None]:
        """
        Iterates the stream, yielding None whenever it stays empty for ``timeout``.

        Args:
            timeout: Seconds of idleness before yielding None, None to never.
        """
        while True:
            with self._not_empty:
                if not self._items and not self._closed:
                    self._not_empty.wait_for(
                        lambda: self._items or self._closed, timeout
                    )
                if not self._items:
                    if self._closed:
                        return
                    message = None
                else:
                    message = self._items.popleft()
                    self._not_full.notify()
            yield message
