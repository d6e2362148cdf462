"""Viewer-side mirror of a store living in another process."""

import logging
import threading
from collections.abc import Callable

from nettab.modules.store.models import RequestRecord
from nettab.modules.store.store import StoreListener

logger = logging.getLogger(__name__)


class RemoteStore:
    """Holds the latest snapshot received over IPC.

    Offers the read side of :class:`RequestStore` so the same views can
    render either one.
    """

    def __init__(self) -> None:
        self._records: list[RequestRecord] = []
        self._listeners: list[StoreListener] = []
        self._lock = threading.RLock()

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)
            self._deliver(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def set_logs(self, records: list[RequestRecord]) -> None:
        with self._lock:
            self._records = list(records)
            for listener in list(self._listeners):
                self._deliver(listener)

    def get_all(self) -> list[RequestRecord]:
        with self._lock:
            return list(self._records)

    def get_one(self, record_id: str) -> RequestRecord | None:
        with self._lock:
            for record in self._records:
                if record.id == record_id:
                    return record
        return None

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def _deliver(self, listener: StoreListener) -> None:
        try:
            listener(list(self._records))
        except Exception:
            logger.debug("Remote store listener failed", exc_info=True)
