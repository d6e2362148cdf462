"""Loopback server broadcasting store snapshots to viewer processes."""

import asyncio
import atexit
import logging
import threading
from collections.abc import Awaitable, Callable
from pathlib import Path

from nettab.modules.ipc.discovery import remove_discovery, write_discovery
from nettab.modules.ipc.protocol import (
    FRAME_LIMIT,
    INIT,
    UPDATE,
    decode_frame,
    logs_frame,
    parse_replay,
)
from nettab.modules.replay import replay_request
from nettab.modules.store.models import RequestRecord
from nettab.modules.store.store import RequestStore
from nettab.utils.async_utils import BackgroundLoop

logger = logging.getLogger(__name__)

ReplayFn = Callable[[RequestRecord], Awaitable[None]]


class _Viewer:
    """One connected viewer and the newest store version it has seen."""

    def __init__(self, writer: asyncio.StreamWriter, version: int):
        self.writer = writer
        self.version = version

    def send(self, payload: bytes) -> None:
        if not self.writer.is_closing():
            self.writer.write(payload)


class IpcServer:
    """Serves ``init``/``update`` frames and accepts ``replay`` frames.

    Must be started and stopped on the event loop that will run it. Store
    notifications may come from any thread; they are handed to that loop.
    """

    def __init__(
        self,
        store: RequestStore,
        host: str = "127.0.0.1",
        port: int = 0,
        discovery_path: Path | None = None,
        replay: ReplayFn = replay_request,
    ):
        self.store = store
        self.host = host
        self.requested_port = port
        self.discovery_path = discovery_path
        self.replay = replay
        self._server: asyncio.Server | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._viewers: set[_Viewer] = set()
        self._replays: set[asyncio.Task] = set()
        self._unsubscribe: Callable[[], None] | None = None
        self.port = 0

    @property
    def running(self) -> bool:
        return self._server is not None

    @property
    def viewer_count(self) -> int:
        return len(self._viewers)

    async def start(self) -> None:
        """Bind, subscribe to the store and publish the discovery record."""
        if self._server is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._server = await asyncio.start_server(
            self._handle_viewer, self.host, self.requested_port, limit=FRAME_LIMIT
        )
        self.port = self._server.sockets[0].getsockname()[1]
        self._unsubscribe = self.store.subscribe(self._on_store_change)
        write_discovery(self.port, self.discovery_path)
        logger.info("IPC server listening on %s:%d", self.host, self.port)

    async def stop(self) -> None:
        """Disconnect viewers, close the listener and retract discovery."""
        if self._server is None:
            return
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        for viewer in list(self._viewers):
            viewer.writer.close()
        self._viewers.clear()
        for task in list(self._replays):
            task.cancel()
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        remove_discovery(self.discovery_path)
        logger.info("IPC server stopped")

    # Store -> viewers --------------------------------------------------------

    def _on_store_change(self, records: list[RequestRecord]) -> None:
        # Runs under the store lock, so the version matches ``records``.
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        version = self.store.version
        try:
            loop.call_soon_threadsafe(self._broadcast, version, records)
        except RuntimeError:
            logger.debug("IPC loop closed; dropping update %d", version)

    def _broadcast(self, version: int, records: list[RequestRecord]) -> None:
        stale = [viewer for viewer in self._viewers if viewer.version < version]
        if not stale:
            return
        payload = logs_frame(UPDATE, records)
        for viewer in stale:
            viewer.version = version
            viewer.send(payload)

    # Viewer connections ------------------------------------------------------

    async def _handle_viewer(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        version, records = self.store.snapshot()
        viewer = _Viewer(writer, version)
        self._viewers.add(viewer)
        logger.debug("Viewer connected (%d total)", len(self._viewers))
        try:
            viewer.send(logs_frame(INIT, records))
            await writer.drain()
            await self._read_frames(reader)
        except OSError as exc:
            logger.debug("Viewer connection lost: %s", exc)
        finally:
            self._viewers.discard(viewer)
            writer.close()
            logger.debug("Viewer disconnected (%d left)", len(self._viewers))

    async def _read_frames(self, reader: asyncio.StreamReader) -> None:
        while True:
            try:
                line = await reader.readline()
            except ValueError:
                logger.debug("Dropping oversized frame")
                continue
            if not line:
                return
            message = decode_frame(line)
            if message is None:
                continue
            record = parse_replay(message)
            if record is not None:
                # Viewers may hold wire copies with shortened bodies.
                self._schedule_replay(self.store.get_one(record.id) or record)

    def _schedule_replay(self, record: RequestRecord) -> None:
        task = asyncio.create_task(self.replay(record))
        self._replays.add(task)
        task.add_done_callback(self._replay_done)

    def _replay_done(self, task: asyncio.Task) -> None:
        self._replays.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Replay task failed", exc_info=task.exception())


class IpcHandle:
    """A server running on its own background loop thread."""

    def __init__(self, server: IpcServer, loop: BackgroundLoop):
        self.server = server
        self._loop = loop
        self._lock = threading.Lock()
        self._closed = False

    @property
    def port(self) -> int:
        return self.server.port

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        atexit.unregister(self.close)
        try:
            self._loop.run(self.server.stop(), timeout=5.0)
        except (RuntimeError, TimeoutError, OSError):
            logger.debug("IPC server did not stop cleanly", exc_info=True)
        finally:
            self._loop.stop()


def start_ipc_server(
    store: RequestStore,
    host: str = "127.0.0.1",
    port: int = 0,
    discovery_path: Path | None = None,
    replay: ReplayFn = replay_request,
) -> IpcHandle:
    """Start an :class:`IpcServer` on a background thread.

    The returned handle's ``close()`` is idempotent and also runs at exit.
    """
    loop = BackgroundLoop("nettab-ipc")
    loop.start()
    server = IpcServer(store, host=host, port=port, discovery_path=discovery_path, replay=replay)
    try:
        loop.run(server.start(), timeout=5.0)
    except BaseException:
        loop.stop()
        raise
    handle = IpcHandle(server, loop)
    atexit.register(handle.close)
    return handle
