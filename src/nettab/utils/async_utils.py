"""Async utilities for event loop management."""

import asyncio
import logging
import signal
import sys
import threading
from collections.abc import Coroutine
from typing import Any, TypeVar, cast

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _cancel_all_tasks(loop: asyncio.AbstractEventLoop) -> None:
    """Cancel all pending tasks on the event loop."""
    tasks = asyncio.all_tasks(loop)
    for task in tasks:
        task.cancel()

    if tasks:
        loop.run_until_complete(asyncio.gather(*tasks, return_exceptions=True))


def _shutdown_asyncgens(loop: asyncio.AbstractEventLoop) -> None:
    """Shutdown all async generators."""
    try:
        loop.run_until_complete(loop.shutdown_asyncgens())
    except RuntimeError:
        logger.debug("Async generator shutdown failed", exc_info=True)


def _run_in_fresh_loop(coro: Coroutine[Any, Any, T]) -> T:
    """Run an async coroutine in a new loop, turning SIGINT/SIGTERM into cancellation."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    original_sigint = None
    original_sigterm = None
    interrupted = False

    def signal_handler(signum: int, frame: Any) -> None:
        nonlocal interrupted
        interrupted = True
        for task in asyncio.all_tasks(loop):
            task.cancel()

    # Install signal handlers only on Unix main thread.
    on_main = sys.platform != "win32" and threading.current_thread() is threading.main_thread()
    if on_main:
        original_sigint = signal.signal(signal.SIGINT, signal_handler)
        original_sigterm = signal.signal(signal.SIGTERM, signal_handler)

    try:
        return loop.run_until_complete(coro)
    except asyncio.CancelledError:
        if interrupted:
            raise KeyboardInterrupt from None
        raise
    finally:
        try:
            _cancel_all_tasks(loop)
            _shutdown_asyncgens(loop)
        finally:
            asyncio.set_event_loop(None)
            loop.close()

        if on_main:
            if original_sigint is not None:
                signal.signal(signal.SIGINT, original_sigint)
            if original_sigterm is not None:
                signal.signal(signal.SIGTERM, original_sigterm)


def safe_async_run(coro: Coroutine[Any, Any, T]) -> T:
    """
    Run an async coroutine to completion from synchronous code.

    If an event loop is already running in this thread (e.g. pytest-asyncio),
    the coroutine is executed in a separate thread with its own event loop.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return _run_in_fresh_loop(coro)

    result: T | None = None
    error: BaseException | None = None

    def _runner() -> None:
        nonlocal result, error
        try:
            result = _run_in_fresh_loop(coro)
        except BaseException as exc:
            error = exc

    thread = threading.Thread(target=_runner, daemon=True)
    thread.start()
    thread.join()

    if error is not None:
        raise error

    return cast(T, result)


class BackgroundLoop:
    """An event loop running forever on a daemon thread.

    Synchronous code hands it coroutines with :meth:`run`.
    """

    def __init__(self, name: str = "nettab-loop"):
        self.name = name
        self.loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._ready = threading.Event()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._ready.clear()
        self._thread = threading.Thread(target=self._main, name=self.name, daemon=True)
        self._thread.start()
        self._ready.wait()

    def _main(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self.loop = loop
        self._ready.set()
        try:
            loop.run_forever()
        finally:
            try:
                _cancel_all_tasks(loop)
                _shutdown_asyncgens(loop)
            finally:
                asyncio.set_event_loop(None)
                loop.close()

    def run(self, coro: Coroutine[Any, Any, T], timeout: float | None = None) -> T:
        """Run ``coro`` on the loop and wait for its result."""
        if self.loop is None or not self.running:
            coro.close()
            raise RuntimeError(f"{self.name} is not running")
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        return future.result(timeout)

    def stop(self, timeout: float = 5.0) -> None:
        if not self.running or self.loop is None:
            return
        self.loop.call_soon_threadsafe(self.loop.stop)
        if self._thread is not threading.current_thread():
            self._thread.join(timeout)
        self._thread = None
        self.loop = None
