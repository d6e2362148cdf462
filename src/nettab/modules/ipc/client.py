"""Viewer-side connection to a running instance."""

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path

from nettab.modules.ipc.discovery import read_discovery
from nettab.modules.ipc.protocol import FRAME_LIMIT, decode_frame, parse_logs, replay_frame
from nettab.modules.store.models import RequestRecord

logger = logging.getLogger(__name__)

LogsCallback = Callable[[list[RequestRecord]], None]
ErrorCallback = Callable[[Exception], None]


class NoRunningInstanceError(RuntimeError):
    """No live instance could be found or reached."""


class ViewerConnection:
    """An open viewer stream; frames are dispatched by a background task."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        on_logs: LogsCallback,
        on_error: ErrorCallback | None = None,
    ):
        self._reader = reader
        self._writer = writer
        self._on_logs = on_logs
        self._on_error = on_error
        self.frames_received = 0
        self._task = asyncio.create_task(self._read_loop())

    @property
    def closed(self) -> bool:
        return self._task.done()

    def send_replay(self, record: RequestRecord) -> None:
        """Ask the instance to re-issue ``record``'s request."""
        if self._writer.is_closing():
            raise ConnectionError("viewer connection is closed")
        self._writer.write(replay_frame(record))

    async def drain(self) -> None:
        await self._writer.drain()

    async def wait_closed(self) -> None:
        """Wait until the instance closes the connection."""
        await asyncio.shield(self._task)

    async def close(self) -> None:
        if not self._writer.is_closing():
            try:
                await self._writer.drain()
            except OSError:
                logger.debug("Could not flush viewer connection", exc_info=True)
            self._writer.close()
        try:
            await self._writer.wait_closed()
        except OSError:
            logger.debug("Viewer connection closed with an error", exc_info=True)
        await self._task

    async def _read_loop(self) -> None:
        try:
            while True:
                try:
                    line = await self._reader.readline()
                except ValueError:
                    logger.debug("Dropping oversized frame")
                    continue
                if not line:
                    return
                message = decode_frame(line)
                if message is None:
                    continue
                records = parse_logs(message)
                if records is None:
                    continue
                self.frames_received += 1
                try:
                    self._on_logs(records)
                except Exception:
                    logger.debug("Viewer logs callback failed", exc_info=True)
        except OSError as exc:
            logger.debug("Viewer connection lost: %s", exc)
            if self._on_error is not None:
                self._on_error(exc)


async def connect_to_ipc(
    on_logs: LogsCallback,
    on_connect: Callable[[], None] | None = None,
    on_error: ErrorCallback | None = None,
    discovery_path: Path | None = None,
    host: str = "127.0.0.1",
) -> ViewerConnection:
    """Connect to the instance named by the discovery record.

    Raises :class:`NoRunningInstanceError` when there is no live record or
    the connection is refused. There are no retries.
    """
    info = read_discovery(discovery_path)
    if info is None:
        error = NoRunningInstanceError(
            "No running nettab instance found. Start your app with nettab enabled first."
        )
        if on_error is not None:
            on_error(error)
        raise error

    try:
        reader, writer = await asyncio.open_connection(host, info.port, limit=FRAME_LIMIT)
    except OSError as exc:
        error = NoRunningInstanceError(
            f"Could not connect to nettab instance (pid {info.pid}, port {info.port}): {exc}"
        )
        if on_error is not None:
            on_error(error)
        raise error from exc

    logger.debug("Connected to pid %d on port %d", info.pid, info.port)
    if on_connect is not None:
        on_connect()
    return ViewerConnection(reader, writer, on_logs, on_error)
