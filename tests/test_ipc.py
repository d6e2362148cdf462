"""Tests for discovery, framing, the broadcast server and the viewer client."""

import asyncio
import json
import os
import socket
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path

import httpx
import pytest
import respx

from nettab.modules.intercept import RequestBody, RequestStart, ResponseComplete
from nettab.modules.ipc import (
    DiscoveryInfo,
    IpcServer,
    NoRunningInstanceError,
    connect_to_ipc,
    decode_frame,
    default_discovery_path,
    encode_frame,
    read_discovery,
    remove_discovery,
    start_ipc_server,
    write_discovery,
)
from nettab.modules.ipc.protocol import FRAME_LIMIT, logs_frame, parse_logs, parse_replay, replay_frame
from nettab.modules.replay import replay_request
from nettab.modules.store import RequestRecord


def _start(request_id: str, method: str = "GET", path: str = "/") -> RequestStart:
    return RequestStart(
        id=request_id,
        method=method,
        url=f"http://api.test{path}",
        scheme="http",
        host="api.test",
        path=path,
        headers={"Content-Type": "application/json", "X-Trace": "t1"},
    )


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


async def _noop_replay(record: RequestRecord) -> None:
    return None


@asynccontextmanager
async def _serving(store, path: Path, replay=_noop_replay):
    server = IpcServer(store, discovery_path=path, replay=replay)
    await server.start()
    try:
        yield server
    finally:
        await server.stop()


async def _read(reader: asyncio.StreamReader) -> dict:
    return decode_frame(await asyncio.wait_for(reader.readline(), 5))


async def _until(predicate, timeout: float = 5.0) -> None:
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.01)


# ── Discovery ────────────────────────────────────────────────────


class TestDiscovery:
    def test_write_then_read(self, discovery_file):
        written = write_discovery(4321, discovery_file)
        info = read_discovery(discovery_file)
        assert info == written
        assert info.pid == os.getpid()
        assert info.port == 4321
        assert info.created_at > 0
        assert json.loads(discovery_file.read_text())["createdAt"] == info.created_at

    def test_missing_file(self, discovery_file):
        assert read_discovery(discovery_file) is None

    @pytest.mark.parametrize(
        "content",
        ["{", "[]", '{"pid": "x", "port": 1}', '{"pid": 1, "port": 70000}', '{"port": 80}'],
    )
    def test_malformed_file(self, discovery_file, content):
        discovery_file.write_text(content)
        assert read_discovery(discovery_file) is None

    def test_stale_pid(self, discovery_file, monkeypatch):
        write_discovery(4321, discovery_file)
        monkeypatch.setattr("nettab.modules.ipc.discovery.psutil.pid_exists", lambda pid: False)
        assert read_discovery(discovery_file) is None

    def test_stale_record_is_replaced(self, discovery_file, monkeypatch):
        discovery_file.write_text(json.dumps({"pid": 4242, "port": 1000, "createdAt": 1}))
        monkeypatch.setattr(
            "nettab.modules.ipc.discovery.psutil.pid_exists", lambda pid: pid == os.getpid()
        )
        assert write_discovery(2000, discovery_file) is not None
        assert read_discovery(discovery_file).port == 2000

    def test_live_owner_is_not_overwritten(self, discovery_file, monkeypatch):
        monkeypatch.setattr("nettab.modules.ipc.discovery.psutil.pid_exists", lambda pid: True)
        write_discovery(1111, discovery_file, pid=4242)
        assert write_discovery(2222, discovery_file) is None
        info = read_discovery(discovery_file)
        assert info.pid == 4242
        assert info.port == 1111

    def test_remove_only_own_record(self, discovery_file):
        write_discovery(1111, discovery_file, pid=4242)
        assert remove_discovery(discovery_file) is False
        assert discovery_file.exists()
        assert remove_discovery(discovery_file, pid=4242) is True
        assert not discovery_file.exists()
        assert remove_discovery(discovery_file) is False

    def test_no_temp_files_left(self, discovery_file):
        write_discovery(1, discovery_file)
        write_discovery(2, discovery_file)
        assert [p.name for p in discovery_file.parent.iterdir()] == [discovery_file.name]

    def test_default_path(self):
        path = default_discovery_path()
        assert path.parent == Path(tempfile.gettempdir())
        assert path.name.startswith("nettab-")
        assert path.suffix == ".json"

    def test_to_dict(self):
        assert DiscoveryInfo(1, 2, 3).to_dict() == {"pid": 1, "port": 2, "createdAt": 3}


# ── Framing ──────────────────────────────────────────────────────


class TestProtocol:
    def test_encode_is_one_compact_line(self):
        frame = encode_frame({"type": "update", "logs": [], "note": "héllo"})
        assert frame.endswith(b"\n")
        assert frame.count(b"\n") == 1
        assert b" " not in frame
        assert "héllo".encode() in frame

    @pytest.mark.parametrize(
        "line",
        [b"", b"   \n", b"not json\n", b"[1, 2]\n", b'{"logs": []}\n', b'{"type": 5}\n', b"\xff\n"],
    )
    def test_decode_rejects_non_messages(self, line):
        assert decode_frame(line) is None

    def test_logs_frame_round_trip(self):
        records = [RequestRecord(id="a", status=200), RequestRecord(id="b")]
        message = decode_frame(logs_frame("init", records))
        assert message["type"] == "init"
        assert parse_logs(message) == records

    def test_parse_logs_rejects_bad_payloads(self):
        assert parse_logs({"type": "init", "logs": "nope"}) is None
        assert parse_logs({"type": "init", "logs": [{"id": ""}]}) is None
        assert parse_logs({"type": "replay", "logs": []}) is None

    def test_parse_replay(self):
        record = RequestRecord(id="a", method="PUT", url="http://x/")
        assert parse_replay(decode_frame(replay_frame(record))) == record
        assert parse_replay({"type": "replay"}) is None
        assert parse_replay({"type": "update", "log": record.to_dict()}) is None

    def test_oversized_bodies_are_shortened_on_the_wire(self):
        huge = "x" * (FRAME_LIMIT + 1024)
        records = [
            RequestRecord(id="big", status=200, response_body=huge, request_body="small"),
            RequestRecord(id="tiny", status=200, response_body='{"ok":true}'),
        ]
        payload = logs_frame("init", records)

        assert len(payload) < FRAME_LIMIT
        logs = parse_logs(decode_frame(payload))
        assert logs[0].response_body.endswith(f"[Truncated: {len(huge)} chars]")
        assert logs[0].request_body == "small"
        assert logs[1].response_body == '{"ok":true}'
        assert records[0].response_body == huge

    def test_small_snapshots_are_sent_whole(self):
        record = RequestRecord(id="a", status=200, response_body="y" * 4096)
        logs = parse_logs(decode_frame(logs_frame("update", [record])))
        assert logs == [record]


# ── Server ───────────────────────────────────────────────────────


class TestIpcServer:
    @pytest.mark.asyncio
    async def test_init_then_update(self, channel, store, discovery_file):
        for i in range(3):
            channel.emit(_start(f"r{i}"))
        async with _serving(store, discovery_file) as server:
            reader, writer = await asyncio.open_connection("127.0.0.1", server.port)
            init = await _read(reader)
            assert init["type"] == "init"
            assert [log["id"] for log in init["logs"]] == ["r2", "r1", "r0"]

            channel.emit(_start("r3"))
            update = await _read(reader)
            assert update["type"] == "update"
            assert [log["id"] for log in update["logs"]] == ["r3", "r2", "r1", "r0"]
            writer.close()
            await writer.wait_closed()

    @pytest.mark.asyncio
    async def test_publishes_and_retracts_discovery(self, store, discovery_file):
        async with _serving(store, discovery_file) as server:
            info = read_discovery(discovery_file)
            assert info.port == server.port
            assert info.pid == os.getpid()
        assert not discovery_file.exists()
        assert not server.running

    @pytest.mark.asyncio
    async def test_every_viewer_gets_updates(self, channel, store, discovery_file):
        async with _serving(store, discovery_file) as server:
            first_reader, first_writer = await asyncio.open_connection("127.0.0.1", server.port)
            second_reader, second_writer = await asyncio.open_connection("127.0.0.1", server.port)
            assert (await _read(first_reader))["logs"] == []
            assert (await _read(second_reader))["logs"] == []

            channel.emit(_start("a"))
            for reader in (first_reader, second_reader):
                update = await _read(reader)
                assert [log["id"] for log in update["logs"]] == ["a"]
            for writer in (first_writer, second_writer):
                writer.close()

    @pytest.mark.asyncio
    async def test_replay_frame_invokes_replay(self, channel, store, discovery_file):
        replayed = []
        done = asyncio.Event()

        async def fake_replay(record):
            replayed.append(record)
            done.set()

        channel.emit(_start("r0", "POST", "/items"))
        original = store.get_one("r0")

        async with _serving(store, discovery_file, replay=fake_replay) as server:
            reader, writer = await asyncio.open_connection("127.0.0.1", server.port)
            await _read(reader)
            writer.write(replay_frame(original))
            await writer.drain()
            await asyncio.wait_for(done.wait(), 5)
            writer.close()

        assert replayed[0].method == "POST"
        assert replayed[0].url == "http://api.test/items"
        assert replayed[0].request_headers == original.request_headers
        assert store.get_one("r0") == original
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_replay_uses_stored_record(self, channel, store, discovery_file):
        replayed = []
        done = asyncio.Event()

        async def fake_replay(record):
            replayed.append(record)
            done.set()

        channel.emit(_start("r0", "POST", "/items"))
        channel.emit(RequestBody(id="r0", body='{"name":"full body"}'))
        wire_copy = store.get_one("r0")
        wire_copy.request_body = '{"name":'

        async with _serving(store, discovery_file, replay=fake_replay) as server:
            reader, writer = await asyncio.open_connection("127.0.0.1", server.port)
            await _read(reader)
            writer.write(replay_frame(wire_copy))
            await writer.drain()
            await asyncio.wait_for(done.wait(), 5)
            writer.close()

        assert replayed[0].request_body == '{"name":"full body"}'

    @pytest.mark.asyncio
    async def test_oversized_body_still_reaches_viewer(self, channel, store, discovery_file):
        channel.emit(_start("big"))
        channel.emit(ResponseComplete(id="big", body="z" * (FRAME_LIMIT + 1), duration=1))
        async with _serving(store, discovery_file) as server:
            reader, writer = await asyncio.open_connection("127.0.0.1", server.port, limit=FRAME_LIMIT)
            init = await _read(reader)
            assert [log["id"] for log in init["logs"]] == ["big"]

            channel.emit(_start("next"))
            update = await _read(reader)
            assert [log["id"] for log in update["logs"]] == ["next", "big"]
            writer.close()
        assert len(store.get_one("big").response_body) == FRAME_LIMIT + 1

    @pytest.mark.asyncio
    async def test_replay_issues_real_request(self, channel, store, discovery_file):
        channel.emit(_start("r0", "DELETE", "/items/7"))
        with respx.mock:
            route = respx.delete("http://api.test/items/7").mock(return_value=httpx.Response(204))
            async with _serving(store, discovery_file, replay=replay_request) as server:
                reader, writer = await asyncio.open_connection("127.0.0.1", server.port)
                await _read(reader)
                writer.write(replay_frame(store.get_one("r0")))
                await writer.drain()
                await _until(lambda: route.called)
                writer.close()
        assert route.calls.last.request.headers["X-Trace"] == "t1"

    @pytest.mark.asyncio
    async def test_malformed_frames_keep_connection(self, channel, store, discovery_file):
        replayed = []

        async def fake_replay(record):
            replayed.append(record)

        channel.emit(_start("r0"))
        async with _serving(store, discovery_file, replay=fake_replay) as server:
            reader, writer = await asyncio.open_connection("127.0.0.1", server.port)
            await _read(reader)
            writer.write(b"not json\n[1,2]\n{}\n")
            writer.write(b'{"type":"replay","log":{"id":""}}\n')
            writer.write(b'{"type":"mystery"}\n')
            writer.write(replay_frame(store.get_one("r0")))
            await writer.drain()
            await _until(lambda: replayed)

            assert server.viewer_count == 1
            channel.emit(_start("r1"))
            assert (await _read(reader))["type"] == "update"
            writer.close()
        assert len(replayed) == 1

    @pytest.mark.asyncio
    async def test_viewer_disconnect_is_tracked(self, store, discovery_file):
        async with _serving(store, discovery_file) as server:
            reader, writer = await asyncio.open_connection("127.0.0.1", server.port)
            await _read(reader)
            assert server.viewer_count == 1
            writer.close()
            await writer.wait_closed()
            await _until(lambda: server.viewer_count == 0)

    @pytest.mark.asyncio
    async def test_stop_disconnects_viewers(self, store, discovery_file):
        server = IpcServer(store, discovery_path=discovery_file, replay=_noop_replay)
        await server.start()
        reader, writer = await asyncio.open_connection("127.0.0.1", server.port)
        await _read(reader)
        await server.stop()
        assert await asyncio.wait_for(reader.read(), 5) == b""
        writer.close()
        await server.stop()


class TestBackgroundServer:
    def test_updates_cross_threads(self, channel, store, discovery_file):
        handle = start_ipc_server(store, discovery_path=discovery_file, replay=_noop_replay)
        try:
            with socket.create_connection(("127.0.0.1", handle.port), timeout=5) as sock:
                frames = sock.makefile("rb")
                assert decode_frame(frames.readline())["type"] == "init"
                channel.emit(_start("from-main-thread"))
                update = decode_frame(frames.readline())
                assert update["type"] == "update"
                assert update["logs"][0]["id"] == "from-main-thread"
        finally:
            handle.close()

    def test_close_is_idempotent(self, store, discovery_file):
        handle = start_ipc_server(store, discovery_path=discovery_file)
        assert read_discovery(discovery_file).port == handle.port
        handle.close()
        handle.close()
        assert handle.closed
        assert not discovery_file.exists()


# ── Client ───────────────────────────────────────────────────────


class TestConnectToIpc:
    @pytest.mark.asyncio
    async def test_no_instance(self, discovery_file):
        errors = []
        with pytest.raises(NoRunningInstanceError, match="No running nettab instance found"):
            await connect_to_ipc(lambda logs: None, on_error=errors.append, discovery_path=discovery_file)
        assert len(errors) == 1

    @pytest.mark.asyncio
    async def test_refused(self, discovery_file):
        port = _free_port()
        write_discovery(port, discovery_file)
        with pytest.raises(NoRunningInstanceError, match=f"port {port}"):
            await connect_to_ipc(lambda logs: None, discovery_path=discovery_file)

    @pytest.mark.asyncio
    async def test_receives_snapshots(self, channel, store, discovery_file):
        channel.emit(_start("a"))
        snapshots = []
        connected = []
        async with _serving(store, discovery_file):
            connection = await connect_to_ipc(
                snapshots.append,
                on_connect=lambda: connected.append(True),
                discovery_path=discovery_file,
            )
            await _until(lambda: snapshots)
            channel.emit(_start("b"))
            await _until(lambda: len(snapshots) == 2)
            await connection.close()

        assert connected == [True]
        assert [r.id for r in snapshots[0]] == ["a"]
        assert [r.id for r in snapshots[1]] == ["b", "a"]
        assert isinstance(snapshots[1][0], RequestRecord)
        assert connection.frames_received == 2
        assert connection.closed

    @pytest.mark.asyncio
    async def test_send_replay(self, channel, store, discovery_file):
        replayed = []

        async def fake_replay(record):
            replayed.append(record)

        channel.emit(_start("a", "PATCH", "/thing"))
        async with _serving(store, discovery_file, replay=fake_replay):
            connection = await connect_to_ipc(lambda logs: None, discovery_path=discovery_file)
            connection.send_replay(store.get_one("a"))
            await connection.drain()
            await _until(lambda: replayed)
            await connection.close()
        assert replayed[0].method == "PATCH"

    @pytest.mark.asyncio
    async def test_wait_closed_when_instance_stops(self, store, discovery_file):
        server = IpcServer(store, discovery_path=discovery_file, replay=_noop_replay)
        await server.start()
        connection = await connect_to_ipc(lambda logs: None, discovery_path=discovery_file)
        await server.stop()
        await asyncio.wait_for(connection.wait_closed(), 5)
        assert connection.closed
        await connection.close()
        with pytest.raises(ConnectionError):
            connection.send_replay(RequestRecord(id="x"))
