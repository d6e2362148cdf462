"""Live request table for the intercepted process and for remote viewers."""

import asyncio
import threading
from collections.abc import Callable
from typing import Any

from rich.console import Console, RenderableType
from rich.live import Live

from nettab.console.render import build_list_panel
from nettab.modules.store.models import RequestRecord


class LiveRequestView:
    """Keeps a rich ``Live`` panel in sync with a store's snapshots.

    Works with anything exposing ``subscribe(listener)``: the local
    :class:`RequestStore` or a viewer's :class:`RemoteStore`. Rich refreshes
    the panel on its own thread, so the application keeps running.
    """

    def __init__(
        self,
        store: Any,
        console: Console | None = None,
        title: str = "Network",
        subtitle: str = "",
        limit: int | None = None,
    ):
        self.store = store
        self.console = console or Console()
        self.title = title
        self.subtitle = subtitle
        self.limit = limit
        self._records: list[RequestRecord] = []
        self._lock = threading.Lock()
        self._live: Live | None = None
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def records(self) -> list[RequestRecord]:
        with self._lock:
            return list(self._records)

    def _on_logs(self, records: list[RequestRecord]) -> None:
        with self._lock:
            self._records = records[: self.limit] if self.limit else records

    def render(self) -> RenderableType:
        return build_list_panel(self.records, self.title, self.subtitle)

    def start(self) -> None:
        if self._live is not None:
            return
        self._unsubscribe = self.store.subscribe(self._on_logs)
        self._live = Live(
            console=self.console,
            refresh_per_second=4,
            get_renderable=self.render,
        )
        self._live.start()

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._live is not None:
            self._live.stop()
            self._live = None

    async def run_until(self, done: Callable[[], bool], interval: float = 0.25) -> None:
        """Show the panel until ``done()`` returns True."""
        self.start()
        try:
            while not done():
                await asyncio.sleep(interval)
        finally:
            self.stop()

    def __enter__(self) -> "LiveRequestView":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()
