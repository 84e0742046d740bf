"""Tarball implementation of the message archive interfaces."""

import io
import logging
import tarfile
import time
import uuid
from collections.abc import Iterable, Iterator
from pathlib import Path
from urllib.parse import quote, unquote

from rabbit_bridge.domain import ROUTING_KEY_ATTRIBUTE, Message, MessageBuilder
from rabbit_bridge.exceptions import ArchiveReadError, ArchiveWriteError
from rabbit_bridge.infrastructure.interfaces import MessageSink, MessageSource
from rabbit_bridge.stream import MessageStream

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIXES = (".tar", ".tgz", ".tar.gz")
HEADER_PREFIX = "RABBIT.header."

# PAX keywords tarfile itself reads and writes; everything else is a message attribute.
_STANDARD_PAX_FIELDS = frozenset(tarfile.PAX_FIELDS) | {
    "atime",
    "ctime",
    "comment",
    "charset",
    "hdrcharset",
}


class TarballReader(MessageSource):
    """Reads messages from tar archives, one regular member per message."""

    def __init__(self, builder: MessageBuilder, routing_key_override: str = ""):
        self._builder = builder
        self._routing_key_override = routing_key_override

    def read(self, path: Path) -> Iterator[Message]:
        path = Path(path)
        for archive in self._archives(path):
            logger.info("Reading message archive", extra={"path": str(archive)})
            yield from self._read_archive(archive)

    def _archives(self, path: Path) -> list[Path]:
        if not path.is_dir():
            return [path]
        return sorted(
            p
            for p in path.iterdir()
            if p.is_file() and p.name.endswith(ARCHIVE_SUFFIXES)
        )

    def _read_archive(self, archive: Path) -> Iterator[Message]:
        try:
            tar = tarfile.open(archive, mode="r:*")
        except (OSError, tarfile.TarError) as e:
            raise ArchiveReadError(str(archive), e) from e

        with tar:
            while True:
                try:
                    member = tar.next()
                    if member is None:
                        break
                    if not member.isfile():
                        continue
                    body = tar.extractfile(member).read()
                except (OSError, tarfile.TarError) as e:
                    raise ArchiveReadError(str(archive), e) from e

                yield self._builder.build(
                    body, _attributes(member.pax_headers), self._routing_key_override
                )


class TarballWriter(MessageSink):
    """
    Writes messages into gzip tarballs of at most ``batch_size`` members.

    Archive names carry a per-writer run id and a running index, and are
    opened exclusively, so an existing archive is never overwritten. When
    reading a MessageStream with a ``flush_interval``, a partial batch is
    written as soon as the stream stays idle that long.
    """

    def __init__(
        self,
        directory: Path,
        batch_size: int = 1000,
        prefix: str = "messages",
        flush_interval: float = 0,
        run_id: str | None = None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._directory = Path(directory)
        self._batch_size = batch_size
        self._prefix = prefix
        self._flush_interval = flush_interval
        self._run_id = run_id or (
            time.strftime("%Y%m%dT%H%M%S", time.gmtime()) + "-" + uuid.uuid4().hex[:8]
        )
        self._index = 0

    def write(self, messages: Iterable[Message]) -> list[Path]:
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ArchiveWriteError(str(self._directory), e) from e

        if isinstance(messages, MessageStream) and self._flush_interval > 0:
            items = messages.iter_idle(self._flush_interval)
        else:
            items = iter(messages)

        written: list[Path] = []
        batch: list[Message] = []
        for message in items:
            if message is not None:
                batch.append(message)
            if batch and (message is None or len(batch) == self._batch_size):
                written.append(self._write_batch(batch))
                batch = []
        if batch:
            written.append(self._write_batch(batch))

        logger.info(
            "Message archives written",
            extra={"directory": str(self._directory), "archives": len(written)},
        )
        return written

    def _write_batch(self, batch: list[Message]) -> Path:
        index = self._index
        self._index += 1
        path = self._directory / f"{self._prefix}-{self._run_id}-{index:05d}.tgz"
        now = int(time.time())
        try:
            with tarfile.open(path, mode="x:gz", format=tarfile.PAX_FORMAT) as tar:
                for position, message in enumerate(batch):
                    info = tarfile.TarInfo(name=f"{index:05d}-{position:06d}.json")
                    info.size = len(message.body)
                    info.mtime = now
                    info.mode = 0o644
                    info.pax_headers = _pax_headers(message)
                    tar.addfile(info, io.BytesIO(message.body))
        except (OSError, tarfile.TarError) as e:
            raise ArchiveWriteError(str(path), e) from e

        logger.info(
            "Message archive written", extra={"path": str(path), "count": len(batch)}
        )
        return path


def _pax_headers(message: Message) -> dict[str, str]:
    # Header names are namespaced and escaped so they can never shadow a
    # tar keyword or split a PAX record on "=".
    headers = {
        HEADER_PREFIX + quote(key, safe=""): _stringify(value)
        for key, value in message.headers.items()
    }
    if message.routing_key:
        headers[ROUTING_KEY_ATTRIBUTE] = message.routing_key
    return headers


def _attributes(pax_headers: dict[str, str]) -> dict[str, str]:
    attributes = {}
    for key, value in pax_headers.items():
        if key.startswith(HEADER_PREFIX):
            attributes[unquote(key[len(HEADER_PREFIX) :])] = value
        elif key not in _STANDARD_PAX_FIELDS:
            attributes[key] = value
    return attributes


def _stringify(value) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)
