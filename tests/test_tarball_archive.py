import io
import tarfile
import threading

import pytest

from conftest import SignallingWriter
from rabbit_bridge.domain import ROUTING_KEY_ATTRIBUTE, Message, MessageBuilder
from rabbit_bridge.exceptions import (
    ArchiveReadError,
    ArchiveWriteError,
    MissingRoutingKeyError,
)
from rabbit_bridge.infrastructure import TarballReader, TarballWriter
from rabbit_bridge.stream import MessageStream


def _write_tar(path, entries, compression="gz"):
    """Writes (name, body, pax_headers) entries the way an external tool would."""
    with tarfile.open(path, mode=f"w:{compression}", format=tarfile.PAX_FORMAT) as tar:
        for name, body, pax_headers in entries:
            info = tarfile.TarInfo(name=name)
            info.size = len(body)
            info.pax_headers = pax_headers
            tar.addfile(info, io.BytesIO(body))


class TestTarballReader:
    def test_reads_members_as_messages(self, tmp_path):
        archive = tmp_path / "orders.tgz"
        _write_tar(
            archive,
            [
                ("1.json", b'{"id": 1}', {ROUTING_KEY_ATTRIBUTE: "orders.created", "source": "api"}),
                ("2.json", b'{"id": 2}', {ROUTING_KEY_ATTRIBUTE: "orders.paid"}),
            ],
        )

        messages = list(TarballReader(MessageBuilder()).read(archive))

        assert messages == [
            Message(body=b'{"id": 1}', routing_key="orders.created", headers={"source": "api"}),
            Message(body=b'{"id": 2}', routing_key="orders.paid", headers={}),
        ]

    def test_applies_routing_key_override(self, tmp_path):
        archive = tmp_path / "orders.tar"
        _write_tar(
            archive,
            [("1.json", b"{}", {ROUTING_KEY_ATTRIBUTE: "orders.created"})],
            compression="",
        )

        reader = TarballReader(MessageBuilder(), routing_key_override="orders.replayed")

        assert [m.routing_key for m in reader.read(archive)] == ["orders.replayed"]

    def test_skips_directories_and_standard_pax_fields(self, tmp_path):
        archive = tmp_path / "orders.tgz"
        long_name = "nested/" + "x" * 120 + ".json"
        with tarfile.open(archive, mode="w:gz", format=tarfile.PAX_FORMAT) as tar:
            directory = tarfile.TarInfo(name="nested")
            directory.type = tarfile.DIRTYPE
            tar.addfile(directory)
            info = tarfile.TarInfo(name=long_name)
            info.size = 2
            info.pax_headers = {ROUTING_KEY_ATTRIBUTE: "orders.created"}
            tar.addfile(info, io.BytesIO(b"{}"))

        messages = list(TarballReader(MessageBuilder()).read(archive))

        assert len(messages) == 1
        assert messages[0].headers == {}

    def test_reads_directory_in_sorted_order(self, tmp_path):
        _write_tar(tmp_path / "b.tgz", [("1.json", b"b", {ROUTING_KEY_ATTRIBUTE: "b"})])
        _write_tar(tmp_path / "a.tgz", [("1.json", b"a", {ROUTING_KEY_ATTRIBUTE: "a"})])
        (tmp_path / "notes.txt").write_text("not an archive")

        messages = TarballReader(MessageBuilder()).read(tmp_path)

        assert [m.body for m in messages] == [b"a", b"b"]

    def test_unreadable_archive(self, tmp_path):
        archive = tmp_path / "broken.tgz"
        archive.write_bytes(b"definitely not a tarball")

        with pytest.raises(ArchiveReadError):
            list(TarballReader(MessageBuilder()).read(archive))

    def test_strict_builder_rejects_member_without_routing_key(self, tmp_path):
        archive = tmp_path / "orders.tgz"
        _write_tar(archive, [("1.json", b"{}", {"source": "api"})])

        reader = TarballReader(MessageBuilder(require_routing_key=True))

        with pytest.raises(MissingRoutingKeyError):
            list(reader.read(archive))


class TestTarballWriter:
    def test_round_trip(self, tmp_path):
        messages = [
            Message(body=b'{"id": 1}', routing_key="orders.created", headers={"source": "api"}),
            Message(body=b"", routing_key="orders.paid", headers={"attempt": 3}),
        ]

        paths = TarballWriter(tmp_path / "out").write(messages)
        read_back = list(TarballReader(MessageBuilder()).read(paths[0]))

        assert len(paths) == 1
        assert read_back == [
            Message(body=b'{"id": 1}', routing_key="orders.created", headers={"source": "api"}),
            Message(body=b"", routing_key="orders.paid", headers={"attempt": "3"}),
        ]

    def test_splits_into_batches(self, tmp_path):
        messages = [Message(body=str(i).encode(), routing_key="k") for i in range(5)]

        paths = TarballWriter(tmp_path, batch_size=2, run_id="run").write(messages)

        assert [p.name for p in paths] == [
            "messages-run-00000.tgz",
            "messages-run-00001.tgz",
            "messages-run-00002.tgz",
        ]
        bodies = [m.body for m in TarballReader(MessageBuilder()).read(tmp_path)]
        assert bodies == [b"0", b"1", b"2", b"3", b"4"]

    def test_no_messages_writes_nothing(self, tmp_path):
        assert TarballWriter(tmp_path).write([]) == []
        assert list(tmp_path.iterdir()) == []

    def test_rejects_invalid_batch_size(self, tmp_path):
        with pytest.raises(ValueError):
            TarballWriter(tmp_path, batch_size=0)

    def test_header_names_cannot_clobber_tar_fields(self, tmp_path):
        headers = {"size": "999", "path": "../../etc/passwd", "mtime": "x", "a=b": "c"}
        message = Message(body=b'{"id": 1}', routing_key="orders.created", headers=headers)

        paths = TarballWriter(tmp_path).write([message])

        with tarfile.open(paths[0]) as tar:
            (member,) = tar.getmembers()
            assert member.name.endswith(".json")
            assert member.size == len(b'{"id": 1}')
        assert list(TarballReader(MessageBuilder()).read(paths[0])) == [message]

    def test_never_overwrites_existing_archives(self, tmp_path):
        writer = TarballWriter(tmp_path)

        first = writer.write([Message(body=b"1", routing_key="k")])
        second = writer.write([Message(body=b"2", routing_key="k")])
        third = TarballWriter(tmp_path).write([Message(body=b"3", routing_key="k")])

        assert len({*first, *second, *third}) == 3
        bodies = sorted(m.body for m in TarballReader(MessageBuilder()).read(tmp_path))
        assert bodies == [b"1", b"2", b"3"]

    def test_colliding_archive_name_is_an_error(self, tmp_path):
        TarballWriter(tmp_path, run_id="run").write([Message(body=b"1", routing_key="k")])

        with pytest.raises(ArchiveWriteError):
            TarballWriter(tmp_path, run_id="run").write(
                [Message(body=b"2", routing_key="k")]
            )

    def test_flushes_partial_batch_when_stream_is_idle(self, tmp_path):
        stream = MessageStream()
        writer = SignallingWriter(tmp_path, batch_size=100, flush_interval=0.05)
        stream.put(Message(body=b"1", routing_key="k"))
        stream.put(Message(body=b"2", routing_key="k"))
        result = []
        thread = threading.Thread(target=lambda: result.extend(writer.write(stream)))
        thread.start()

        try:
            assert writer.batch_written.wait(timeout=5)
            flushed = list(tmp_path.glob("*.tgz"))
            assert len(flushed) == 1
            bodies = [m.body for m in TarballReader(MessageBuilder()).read(flushed[0])]
            assert bodies == [b"1", b"2"]
            assert thread.is_alive()
        finally:
            stream.close()
            thread.join(timeout=5)

        assert not thread.is_alive()
        assert result == flushed
