"""Bounded request log fed by interception events."""

import logging
import threading
from collections.abc import Callable

from nettab.modules.intercept.events import (
    REQUEST_BODY,
    REQUEST_ERROR,
    REQUEST_START,
    RESPONSE_COMPLETE,
    RESPONSE_HEADERS,
    SIZE_UPDATE,
    TIMING_UPDATE,
    EventChannel,
    RequestBody,
    RequestError,
    RequestStart,
    ResponseComplete,
    ResponseHeaders,
    SizeUpdate,
    TimingUpdate,
)
from nettab.modules.store.models import (
    ERROR,
    PENDING,
    RequestRecord,
    RequestStatus,
    SizeInfo,
    TimingBreakdown,
)

logger = logging.getLogger(__name__)

MAX_LOGS = 50

StoreListener = Callable[[list[RequestRecord]], None]


class RequestStore:
    """In-memory, most-recent-first log of captured exchanges.

    Every mutation bumps :attr:`version` and hands each listener a fresh
    snapshot. Notification happens under the store lock, so listeners observe
    snapshots in mutation order even when several threads are intercepting.
    """

    def __init__(self, channel: EventChannel | None = None, max_logs: int = MAX_LOGS):
        if max_logs < 1:
            raise ValueError("max_logs must be at least 1")
        self.max_logs = max_logs
        self._records: dict[str, RequestRecord] = {}
        self._order: list[str] = []
        self._closed: set[str] = set()
        self._applied: dict[str, set[str]] = {}
        self._listeners: list[StoreListener] = []
        self._lock = threading.RLock()
        self._version = 0
        self._unsubscribers: list[Callable[[], None]] = []
        if channel is not None:
            self.attach(channel)

    # Channel wiring ----------------------------------------------------------

    def attach(self, channel: EventChannel) -> None:
        """Start consuming ``channel``. A store follows one channel at a time."""
        self.detach()
        handlers = {
            REQUEST_START: self._on_start,
            REQUEST_BODY: self._on_body,
            RESPONSE_HEADERS: self._on_headers,
            RESPONSE_COMPLETE: self._on_complete,
            REQUEST_ERROR: self._on_error,
            TIMING_UPDATE: self._on_timing,
            SIZE_UPDATE: self._on_size,
        }
        self._unsubscribers = [channel.subscribe(kind, fn) for kind, fn in handlers.items()]

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    @property
    def attached(self) -> bool:
        return bool(self._unsubscribers)

    # Queries -----------------------------------------------------------------

    @property
    def version(self) -> int:
        with self._lock:
            return self._version

    def get_all(self) -> list[RequestRecord]:
        """Return copies of all records, most recent first."""
        with self._lock:
            return self._copies()

    def get_one(self, record_id: str) -> RequestRecord | None:
        with self._lock:
            record = self._records.get(record_id)
            return record.copy() if record is not None else None

    def snapshot(self) -> tuple[int, list[RequestRecord]]:
        """Return ``(version, records)`` taken atomically."""
        with self._lock:
            return self._version, self._copies()

    def search(
        self,
        method: str = "",
        status: RequestStatus | None = None,
        url_contains: str = "",
    ) -> list[RequestRecord]:
        """Filter records by one or more criteria."""
        results = self.get_all()
        if method:
            results = [r for r in results if r.method.upper() == method.upper()]
        if status is not None:
            results = [r for r in results if r.status == status]
        if url_contains:
            results = [r for r in results if url_contains in r.url]
        return results

    def __len__(self) -> int:
        with self._lock:
            return len(self._order)

    # Subscription ------------------------------------------------------------

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Register ``listener``, deliver the current snapshot, return unsubscribe."""
        with self._lock:
            self._listeners.append(listener)
            self._deliver(listener, self._copies())

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def clear(self) -> None:
        """Drop every record and notify listeners with an empty snapshot."""
        with self._lock:
            self._records.clear()
            self._order.clear()
            self._closed.clear()
            self._applied.clear()
            self._changed()

    # Internals ---------------------------------------------------------------

    def _copies(self) -> list[RequestRecord]:
        return [self._records[record_id].copy() for record_id in self._order]

    def _deliver(self, listener: StoreListener, records: list[RequestRecord]) -> None:
        try:
            listener(records)
        except Exception:
            logger.debug("Store listener failed", exc_info=True)

    def _changed(self) -> None:
        self._version += 1
        records = self._copies()
        for listener in list(self._listeners):
            self._deliver(listener, list(records))

    def _open_record(self, record_id: str, field_name: str | None = None) -> RequestRecord | None:
        """Return the live record for ``record_id`` if it may still change.

        With ``field_name``, also claim that one-shot field so a second event
        for it is ignored.
        """
        record = self._records.get(record_id)
        if record is None or record_id in self._closed:
            return None
        if field_name is not None:
            applied = self._applied.setdefault(record_id, set())
            if field_name in applied:
                return None
            applied.add(field_name)
        return record

    def _close(self, record_id: str) -> None:
        self._closed.add(record_id)
        self._applied.pop(record_id, None)

    def _on_start(self, event: RequestStart) -> None:
        with self._lock:
            if event.id in self._records:
                return
            self._records[event.id] = RequestRecord(
                id=event.id,
                method=event.method,
                url=event.url,
                scheme=event.scheme,
                host=event.host,
                path=event.path,
                status=PENDING,
                start_time=event.start_time,
                request_headers=dict(event.headers),
            )
            self._order.insert(0, event.id)
            while len(self._order) > self.max_logs:
                evicted = self._order.pop()
                self._records.pop(evicted, None)
                self._closed.discard(evicted)
                self._applied.pop(evicted, None)
            self._changed()

    def _on_body(self, event: RequestBody) -> None:
        with self._lock:
            record = self._open_record(event.id, "request_body")
            if record is None:
                return
            record.request_body = event.body
            self._changed()

    def _on_headers(self, event: ResponseHeaders) -> None:
        with self._lock:
            record = self._open_record(event.id, "response_headers")
            if record is None:
                return
            record.status = event.status_code
            record.response_headers = dict(event.headers)
            self._changed()

    def _on_complete(self, event: ResponseComplete) -> None:
        with self._lock:
            record = self._open_record(event.id)
            if record is None:
                return
            record.response_body = event.body
            record.duration = event.duration
            self._close(event.id)
            self._changed()

    def _on_error(self, event: RequestError) -> None:
        with self._lock:
            record = self._open_record(event.id)
            if record is None:
                return
            record.status = ERROR
            record.error = event.error
            record.duration = event.duration
            self._close(event.id)
            self._changed()

    def _on_timing(self, event: TimingUpdate) -> None:
        with self._lock:
            record = self._open_record(event.id, "timing")
            if record is None:
                return
            record.timing = TimingBreakdown(
                dns=event.dns,
                tcp=event.tcp,
                ttfb=event.ttfb,
                download=event.download,
                total=event.total,
            )
            self._changed()

    def _on_size(self, event: SizeUpdate) -> None:
        with self._lock:
            record = self._open_record(event.id, "size")
            if record is None:
                return
            record.size = SizeInfo(
                transferred=event.transferred,
                resource=event.resource,
                encoding=event.encoding,
            )
            self._changed()
