"""Hooks for ``http.client`` connections.

``urllib.request``, ``urllib3`` (and therefore ``requests``) and direct
``HTTPConnection`` use all drive the same handful of connection methods, so
replacing those on the base class observes every stdlib-backed request.
"""

import http.client
import logging
import weakref
from collections.abc import Callable
from functools import wraps
from typing import Any

from nettab.modules.intercept.body import header_value, headers_from_pairs
from nettab.modules.intercept.call_shapes import ConnectionCall
from nettab.modules.intercept.events import EventChannel
from nettab.modules.intercept.interceptor_helpers import Exchange, observer_guard

logger = logging.getLogger(__name__)

HOOKED_METHODS = ("connect", "putrequest", "putheader", "endheaders", "send", "getresponse")
HOOK_MARKER = "__nettab_hook__"


class _ConnectionState:
    """The request currently being written on one connection."""

    def __init__(self, exchange: Exchange, method: str, target: str):
        self.exchange = exchange
        self.method = method
        self.target = target
        self.headers: list[tuple[str, str]] = []
        self.headers_sent = False
        self.writing_headers = False


class _ChunkFraming:
    """Wraps a chunked response's socket file to follow chunk boundaries.

    Readers that decode chunks themselves (urllib3) read the size lines from
    this file and the payload plus each chunk's trailing CRLF through
    ``_safe_read``. Knowing how much of the current chunk is left tells the
    terminator read apart from payload that happens to be ``\\r\\n``.
    """

    def __init__(self, fp):
        self._fp = fp
        self.chunk_left: int | None = None
        self.last_chunk_seen = False

    def readline(self, *args):
        line = self._fp.readline(*args)
        if not self.last_chunk_seen:
            try:
                size = int(line.split(b";", 1)[0].strip(), 16)
            except ValueError:
                return line
            self.chunk_left = size
            self.last_chunk_seen = size == 0
        return line

    def consumed(self, data: bytes) -> bool:
        """Account for one ``_safe_read`` result; False for a chunk terminator."""
        if self.chunk_left is None:
            return True
        if self.chunk_left == 0:
            self.chunk_left = None
            return False
        self.chunk_left = max(self.chunk_left - len(data), 0)
        return True

    def __getattr__(self, name):
        return getattr(self._fp, name)


class ResponseTap:
    """Observes one ``HTTPResponse`` without consuming it.

    Read methods are replaced on the instance. Only the outermost call is
    captured, so internal delegation (``read`` -> ``_safe_read``, ``readline``
    -> ``peek``/``read``) never records a byte twice, and what gets recorded is
    exactly what the caller received.
    """

    CAPTURING = ("read", "read1", "readline", "_safe_read")

    def __init__(self, response: http.client.HTTPResponse, exchange: Exchange):
        self.response = response
        self.exchange = exchange
        self.depth = 0
        self.close_pending = False
        self.framing: _ChunkFraming | None = None

    def attach(self) -> None:
        response = self.response
        if response.chunked and response.fp is not None:
            self.framing = _ChunkFraming(response.fp)
            response.fp = self.framing
        self.exchange.respond(
            response.status,
            response.reason,
            headers_from_pairs(response.getheaders()),
        )
        for name in self.CAPTURING:
            self._wrap(name, self._capture_bytes)
        self._wrap("readinto", self._capture_into)
        self._wrap("peek", None)
        self._wrap_close()
        if self._at_eof():
            self.finish()

    def finish(self) -> None:
        self.exchange.complete()

    def _at_eof(self) -> bool:
        response = self.response
        return response.fp is None or (response.length == 0 and not response.chunked)

    def _wrap(self, name: str, capture: Callable[[Any, tuple], None] | None) -> None:
        original = getattr(self.response, name, None)
        if original is None:
            return
        tap = self

        @wraps(original)
        def wrapper(*args, **kwargs):
            tap.depth += 1
            try:
                result = original(*args, **kwargs)
            except Exception as exc:
                tap.depth -= 1
                if tap.depth == 0:
                    tap.exchange.fail(exc)
                raise
            tap.depth -= 1
            if tap.depth == 0 and capture is not None:
                with observer_guard(name):
                    capture(result, args, name)
                    if tap.close_pending or tap._at_eof():
                        tap.finish()
            return result

        setattr(self.response, name, wrapper)

    def _wrap_close(self) -> None:
        original = self.response._close_conn
        tap = self

        @wraps(original)
        def _close_conn():
            original()
            if tap.depth:
                tap.close_pending = True
            else:
                tap.finish()

        self.response._close_conn = _close_conn

    def _capture_bytes(self, result: Any, args: tuple, name: str) -> None:
        if name == "_safe_read" and self.framing is not None and not self.framing.consumed(result):
            return
        self.exchange.response_body.append(result)

    def _capture_into(self, result: Any, args: tuple, name: str) -> None:
        if not result or not args:
            return
        view = memoryview(args[0]).cast("B")
        self.exchange.response_body.append(view[:result])


class HTTPClientHooks:
    """Installs and removes the ``HTTPConnection`` method hooks."""

    def __init__(
        self,
        channel: EventChannel,
        connection_class: type[http.client.HTTPConnection] = http.client.HTTPConnection,
    ):
        self.channel = channel
        self.connection_class = connection_class
        self._originals: dict[str, Any] = {}
        self._states: weakref.WeakKeyDictionary = weakref.WeakKeyDictionary()

    @property
    def installed(self) -> bool:
        return bool(self._originals)

    def install(self) -> None:
        if self._originals:
            return
        cls = self.connection_class
        for name in HOOKED_METHODS:
            if getattr(cls.__dict__.get(name), HOOK_MARKER, False):
                raise RuntimeError(f"{cls.__qualname__}.{name} is already hooked by another interceptor")
        for name in HOOKED_METHODS:
            original = cls.__dict__[name]
            hook = getattr(self, f"_hook_{name}")(original)
            setattr(hook, HOOK_MARKER, True)
            self._originals[name] = original
            setattr(cls, name, hook)
        logger.debug("Hooked %s", cls.__qualname__)

    def uninstall(self) -> None:
        cls = self.connection_class
        for name, original in self._originals.items():
            setattr(cls, name, original)
        if self._originals:
            logger.debug("Restored %s", cls.__qualname__)
        self._originals.clear()

    # Helpers -----------------------------------------------------------------

    @staticmethod
    def _connection_call(conn: http.client.HTTPConnection, state: _ConnectionState) -> ConnectionCall:
        is_tls = isinstance(conn, getattr(http.client, "HTTPSConnection", ())) or (
            getattr(conn, "default_port", None) == http.client.HTTPS_PORT
        )
        host, port = conn.host, conn.port
        tunnel_host = getattr(conn, "_tunnel_host", None)
        if tunnel_host:
            host, port = tunnel_host, getattr(conn, "_tunnel_port", None)
        return ConnectionCall(
            scheme="https" if is_tls else "http",
            host=host,
            port=port,
            method=state.method,
            target=state.target,
            headers=list(state.headers),
        )

    def _fail(self, conn: http.client.HTTPConnection, state: _ConnectionState, exc: Exception) -> None:
        state.exchange.fail(exc)
        if self._states.get(conn) is state:
            del self._states[conn]

    # Hooks -------------------------------------------------------------------

    def _hook_connect(self, original):
        hooks = self

        @wraps(original)
        def connect(conn):
            result = original(conn)
            state = hooks._states.get(conn)
            if state is not None:
                state.exchange.timing.mark_connected()
            return result

        return connect

    def _hook_putrequest(self, original):
        hooks = self

        @wraps(original)
        def putrequest(conn, method, url, *args, **kwargs):
            previous = hooks._states.get(conn)
            state = _ConnectionState(Exchange(hooks.channel), header_value(method), header_value(url))
            hooks._states[conn] = state
            try:
                return original(conn, method, url, *args, **kwargs)
            except Exception:
                if previous is None:
                    hooks._states.pop(conn, None)
                else:
                    hooks._states[conn] = previous
                raise

        return putrequest

    def _hook_putheader(self, original):
        hooks = self

        @wraps(original)
        def putheader(conn, header, *values):
            result = original(conn, header, *values)
            state = hooks._states.get(conn)
            if state is not None and not state.headers_sent:
                with observer_guard("putheader"):
                    value = ", ".join(header_value(v) for v in values)
                    state.headers.append((header_value(header), value))
            return result

        return putheader

    def _hook_endheaders(self, original):
        hooks = self

        @wraps(original)
        def endheaders(conn, message_body=None, **kwargs):
            state = hooks._states.get(conn)
            if state is None or state.headers_sent:
                return original(conn, message_body, **kwargs)

            exchange = state.exchange
            state.headers_sent = True
            with observer_guard("endheaders"):
                if conn.sock is not None:
                    exchange.timing.mark_reused()
                exchange.start(hooks._connection_call(conn, state))
                if message_body is not None:
                    exchange.request_body.append(message_body)
                    exchange.flush_request_body()

            state.writing_headers = True
            try:
                return original(conn, message_body, **kwargs)
            except Exception as exc:
                hooks._fail(conn, state, exc)
                raise
            finally:
                state.writing_headers = False

        return endheaders

    def _hook_send(self, original):
        hooks = self

        @wraps(original)
        def send(conn, data):
            state = hooks._states.get(conn)
            if state is None or not state.headers_sent or state.writing_headers:
                return original(conn, data)
            with observer_guard("send"):
                state.exchange.request_body.append(data)
            try:
                return original(conn, data)
            except Exception as exc:
                hooks._fail(conn, state, exc)
                raise

        return send

    def _hook_getresponse(self, original):
        hooks = self

        @wraps(original)
        def getresponse(conn, *args, **kwargs):
            state = hooks._states.get(conn)
            if state is None or not state.headers_sent:
                return original(conn, *args, **kwargs)
            del hooks._states[conn]

            exchange = state.exchange
            exchange.flush_request_body()
            try:
                response = original(conn, *args, **kwargs)
            except Exception as exc:
                exchange.fail(exc)
                raise
            with observer_guard("getresponse"):
                ResponseTap(response, exchange).attach()
            return response

        return getresponse
