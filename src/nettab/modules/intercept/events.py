"""Lifecycle events and the synchronous channel that carries them."""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, ClassVar

from nettab.modules.intercept.body import Headers

logger = logging.getLogger(__name__)

REQUEST_START = "request-start"
REQUEST_BODY = "request-body"
RESPONSE_HEADERS = "response-headers"
RESPONSE_COMPLETE = "response-complete"
REQUEST_ERROR = "request-error"
TIMING_UPDATE = "timing-update"
SIZE_UPDATE = "size-update"

EVENT_KINDS = (
    REQUEST_START,
    REQUEST_BODY,
    RESPONSE_HEADERS,
    RESPONSE_COMPLETE,
    REQUEST_ERROR,
    TIMING_UPDATE,
    SIZE_UPDATE,
)


@dataclass(frozen=True)
class RequestStart:
    kind: ClassVar[str] = REQUEST_START

    id: str
    method: str
    url: str
    scheme: str
    host: str
    path: str
    headers: Headers = field(default_factory=dict)
    start_time: int = 0


@dataclass(frozen=True)
class RequestBody:
    kind: ClassVar[str] = REQUEST_BODY

    id: str
    body: str


@dataclass(frozen=True)
class ResponseHeaders:
    kind: ClassVar[str] = RESPONSE_HEADERS

    id: str
    status_code: int
    status_message: str
    headers: Headers = field(default_factory=dict)


@dataclass(frozen=True)
class ResponseComplete:
    kind: ClassVar[str] = RESPONSE_COMPLETE

    id: str
    body: str
    duration: float


@dataclass(frozen=True)
class RequestError:
    kind: ClassVar[str] = REQUEST_ERROR

    id: str
    error: str
    duration: float


@dataclass(frozen=True)
class TimingUpdate:
    kind: ClassVar[str] = TIMING_UPDATE

    id: str
    dns: float
    tcp: float
    ttfb: float
    download: float
    total: float


@dataclass(frozen=True)
class SizeUpdate:
    kind: ClassVar[str] = SIZE_UPDATE

    id: str
    transferred: int
    resource: int
    encoding: str | None


Event = (
    RequestStart
    | RequestBody
    | ResponseHeaders
    | ResponseComplete
    | RequestError
    | TimingUpdate
    | SizeUpdate
)
Handler = Callable[[Any], None]


class EventChannel:
    """Ordered, multi-subscriber publish point.

    ``emit`` runs every handler registered for the event's kind, in
    subscription order, before returning. A failing handler is logged and
    skipped; the remaining handlers still receive the event.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = {kind: [] for kind in EVENT_KINDS}
        self._lock = threading.Lock()

    def subscribe(self, kind: str, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for ``kind`` and return an unsubscribe callable."""
        if kind not in self._handlers:
            raise ValueError(f"Unknown event kind: {kind}")
        with self._lock:
            self._handlers[kind].append(handler)

        def unsubscribe() -> None:
            with self._lock:
                if handler in self._handlers[kind]:
                    self._handlers[kind].remove(handler)

        return unsubscribe

    def emit(self, event: Event) -> None:
        with self._lock:
            handlers = list(self._handlers[event.kind])
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.debug("Listener for %s failed", event.kind, exc_info=True)

    def listener_count(self, kind: str | None = None) -> int:
        with self._lock:
            if kind is not None:
                return len(self._handlers[kind])
            return sum(len(handlers) for handlers in self._handlers.values())

    def clear(self) -> None:
        with self._lock:
            for handlers in self._handlers.values():
                handlers.clear()
