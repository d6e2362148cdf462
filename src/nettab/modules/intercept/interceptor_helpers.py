"""Per-request state shared by the client hooks."""

import logging
import uuid
import zlib
from collections.abc import Iterator
from contextlib import contextmanager

from nettab.modules.intercept.body import (
    BodyBuffer,
    Headers,
    decode_text,
    decompress,
    first_header,
)
from nettab.modules.intercept.call_shapes import CallShape, normalize
from nettab.modules.intercept.events import (
    Event,
    EventChannel,
    RequestBody,
    RequestError,
    RequestStart,
    ResponseComplete,
    ResponseHeaders,
    SizeUpdate,
    TimingUpdate,
)
from nettab.modules.intercept.timing import TimingTracker

logger = logging.getLogger(__name__)


@contextmanager
def observer_guard(what: str) -> Iterator[None]:
    """Keep capture failures away from the intercepted call."""
    try:
        yield
    except Exception:
        logger.debug("Capture step %r failed", what, exc_info=True)


def describe_error(exc: BaseException) -> str:
    message = str(exc).strip()
    name = type(exc).__name__
    return f"{name}: {message}" if message else name


def parse_length(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        length = int(value.strip())
    except ValueError:
        return None
    return length if length >= 0 else None


class Exchange:
    """One outbound request, from creation until its terminal event.

    Every emission is guarded, and the terminal transition (``complete`` or
    ``fail``) happens at most once.
    """

    def __init__(self, channel: EventChannel):
        self.id = uuid.uuid4().hex
        self.channel = channel
        self.timing = TimingTracker()
        self.request_body = BodyBuffer()
        self.response_body = BodyBuffer()
        self.started = False
        self.body_flushed = False
        self.responded = False
        self.finished = False
        self.content_encoding: str | None = None
        self.content_length: int | None = None

    def emit(self, event: Event) -> None:
        with observer_guard(event.kind):
            self.channel.emit(event)

    def start(self, call: CallShape) -> None:
        if self.started:
            return
        self.started = True
        with observer_guard("normalize"):
            target = normalize(call)
            self.emit(
                RequestStart(
                    id=self.id,
                    method=target.method,
                    url=target.url,
                    scheme=target.scheme,
                    host=target.host,
                    path=target.path,
                    headers=target.headers,
                    start_time=self.timing.start_time,
                )
            )

    def flush_request_body(self) -> None:
        """The caller finished writing; publish what it wrote, if anything."""
        if self.body_flushed or not self.started:
            return
        self.body_flushed = True
        with observer_guard("request-body"):
            text = self.request_body.text()
            self.request_body.seal()
            if text:
                self.emit(RequestBody(id=self.id, body=text))

    def respond(self, status_code: int, status_message: str, headers: Headers) -> None:
        if self.responded or self.finished:
            return
        self.responded = True
        self.timing.mark_first_byte()
        with observer_guard("response-headers"):
            self.content_encoding = first_header(headers, "content-encoding")
            self.content_length = parse_length(first_header(headers, "content-length"))
            self.emit(
                ResponseHeaders(
                    id=self.id,
                    status_code=status_code,
                    status_message=status_message or "",
                    headers=headers,
                )
            )

    def complete(self, *, decoded: bytes | None = None, transferred: int | None = None) -> None:
        """Seal the response body and emit timing, size and completion.

        ``decoded`` is passed when the client already undid the content
        coding (httpx); otherwise the raw captured bytes are decoded here.
        """
        if self.finished:
            return
        self.finished = True
        self.timing.mark_complete()
        with observer_guard("response-complete"):
            raw = self.response_body.seal()
            if decoded is None:
                body = decode_text(raw, self.content_encoding)
                try:
                    resource = len(decompress(raw, self.content_encoding))
                except (ValueError, EOFError, OSError, zlib.error):
                    resource = len(raw)
            else:
                body = decode_text(decoded)
                resource = len(decoded)
            if transferred is None:
                transferred = self.content_length or self.response_body.size

            self.emit(TimingUpdate(id=self.id, **self.timing.breakdown()))
            self.emit(
                SizeUpdate(
                    id=self.id,
                    transferred=transferred,
                    resource=resource,
                    encoding=self.content_encoding,
                )
            )
            self.emit(ResponseComplete(id=self.id, body=body, duration=self.timing.elapsed_ms()))

    def fail(self, exc: BaseException) -> None:
        if self.finished:
            return
        self.flush_request_body()
        self.finished = True
        self.timing.mark_complete()
        if not self.started:
            return
        self.emit(
            RequestError(
                id=self.id,
                error=describe_error(exc),
                duration=self.timing.elapsed_ms(),
            )
        )
