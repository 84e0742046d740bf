"""Abstract interfaces for message archives."""

from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from pathlib import Path

from rabbit_bridge.domain import Message


class MessageSource(ABC):
    """Abstract base class for reading messages out of stored archives."""

    @abstractmethod
    def read(self, path: Path) -> Iterator[Message]:
        """
        Reads messages from an archive file or a directory of archives.

        Args:
            path: Archive file or directory.

        Raises:
            ArchiveReadError: If an archive cannot be read.
        """


class MessageSink(ABC):
    """Abstract base class for storing messages into archives."""

    @abstractmethod
    def write(self, messages: Iterable[Message]) -> list[Path]:
        """
        Stores messages until the input is exhausted.

        Args:
            messages: Messages to store.

        Returns:
            Paths of the archives written.

        Raises:
            ArchiveWriteError: If an archive cannot be written.
        """
