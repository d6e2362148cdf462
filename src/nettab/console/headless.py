"""One log line per finished exchange, for processes without an inline view."""

import threading
from collections.abc import Callable
from typing import Any

from rich.console import Console
from rich.markup import escape

from nettab.console.render import headless_line, status_style
from nettab.modules.store.models import RequestRecord


class HeadlessPrinter:
    """Prints each record once, when it leaves ``PENDING``."""

    def __init__(self, store: Any, console: Console | None = None):
        self.store = store
        self.console = console or Console()
        self._printed: set[str] = set()
        self._lock = threading.Lock()
        self._unsubscribe: Callable[[], None] | None = None

    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(self._on_logs)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_logs(self, records: list[RequestRecord]) -> None:
        finished = [r for r in reversed(records) if not r.is_pending and r.duration > 0]
        with self._lock:
            live_ids = {r.id for r in records}
            self._printed &= live_ids
            for record in finished:
                if record.id in self._printed:
                    continue
                self._printed.add(record.id)
                self.console.print(
                    escape(headless_line(record)),
                    style=status_style(record.status),
                    highlight=False,
                )
