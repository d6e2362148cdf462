"""Test configuration and fixtures for nettab."""

import gzip
import socket
import tempfile
import threading
from collections.abc import Generator
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import pytest

from nettab.modules.intercept import EVENT_KINDS, EventChannel, Interceptor
from nettab.modules.store import RequestStore

LARGE_BODY = b"x" * (256 * 1024)
GZIP_TEXT = "compressed hello " * 64


class _Handler(BaseHTTPRequestHandler):
    protocol_version = "HTTP/1.1"

    def log_message(self, format, *args):  # noqa: A002
        pass

    def _read_body(self) -> bytes:
        length = int(self.headers.get("Content-Length") or 0)
        return self.rfile.read(length) if length else b""

    def _record(self, body: bytes) -> None:
        self.server.received.append(
            {
                "method": self.command,
                "path": self.path,
                "headers": dict(self.headers.items()),
                "body": body,
            }
        )

    def _send(self, status: int, body: bytes, content_type: str = "text/plain", extra=()) -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        for name, value in extra:
            self.send_header(name, value)
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(body)

    def _send_chunked(self, chunks: list[bytes]) -> None:
        self.send_response(200)
        self.send_header("Content-Type", "text/plain")
        self.send_header("Transfer-Encoding", "chunked")
        self.end_headers()
        for chunk in chunks:
            self.wfile.write(f"{len(chunk):x}\r\n".encode() + chunk + b"\r\n")
        self.wfile.write(b"0\r\n\r\n")

    def _route(self, body: bytes) -> None:
        path = self.path.split("?", 1)[0]
        if path == "/posts/1":
            self._send(200, b'{"id":1}', "application/json")
        elif path == "/echo":
            self._send(201, body, self.headers.get("Content-Type", "text/plain"))
        elif path == "/gzip":
            self._send(200, gzip.compress(GZIP_TEXT.encode()), extra=[("Content-Encoding", "gzip")])
        elif path == "/chunked":
            self._send_chunked([b"alpha-", b"beta-", b"gamma"])
        elif path == "/chunked-crlf":
            self._send_chunked([b"ab\n", b"\r\n", b"cd\n"])
        elif path == "/lines":
            self._send(200, b"one\ntwo\nthree\n")
        elif path == "/binary":
            self._send(200, bytes(range(256)) * 4, "application/octet-stream")
        elif path == "/large":
            self._send(200, LARGE_BODY)
        elif path == "/cookies":
            self._send(200, b"ok", extra=[("Set-Cookie", "a=1"), ("Set-Cookie", "b=2")])
        elif path == "/empty":
            self._send(204, b"")
        else:
            self._send(404, b"not found")

    def do_GET(self):
        self._record(b"")
        self._route(b"")

    def do_HEAD(self):
        self._record(b"")
        self._route(b"")

    def do_POST(self):
        body = self._read_body()
        self._record(body)
        self._route(body)

    do_PUT = do_POST
    do_DELETE = do_GET


class LocalServer:
    """Threaded HTTP/1.1 server on an ephemeral loopback port."""

    large_body = LARGE_BODY
    gzip_text = GZIP_TEXT

    def __init__(self) -> None:
        self.httpd = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
        self.httpd.daemon_threads = True
        self.httpd.received = []
        self.thread = threading.Thread(target=self.httpd.serve_forever, daemon=True)

    @property
    def port(self) -> int:
        return self.httpd.server_address[1]

    @property
    def base_url(self) -> str:
        return f"http://127.0.0.1:{self.port}"

    @property
    def received(self) -> list[dict]:
        return self.httpd.received

    def url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def start(self) -> None:
        self.thread.start()

    def stop(self) -> None:
        self.httpd.shutdown()
        self.httpd.server_close()


class EventRecorder:
    """Subscribes to every event kind and keeps what it sees."""

    def __init__(self, channel: EventChannel):
        self.events: list = []
        self._lock = threading.Lock()
        for kind in EVENT_KINDS:
            channel.subscribe(kind, self._record)

    def _record(self, event) -> None:
        with self._lock:
            self.events.append(event)

    def kinds(self, request_id: str | None = None) -> list[str]:
        return [e.kind for e in self.events if request_id is None or e.id == request_id]

    def of(self, cls) -> list:
        return [e for e in self.events if isinstance(e, cls)]

    def first(self, cls):
        found = self.of(cls)
        assert found, f"no {cls.__name__} event recorded"
        return found[0]


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def http_server() -> Generator[LocalServer, None, None]:
    server = LocalServer()
    server.start()
    yield server
    server.stop()


@pytest.fixture
def refused_url() -> str:
    """URL of a loopback port nothing listens on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    return f"http://127.0.0.1:{port}/submit"


@pytest.fixture
def channel() -> EventChannel:
    return EventChannel()


@pytest.fixture
def recorder(channel: EventChannel) -> EventRecorder:
    return EventRecorder(channel)


@pytest.fixture
def interceptor(channel: EventChannel) -> Generator[Interceptor, None, None]:
    """An installed interceptor publishing to ``channel``."""
    active = Interceptor(channel)
    active.install()
    yield active
    active.uninstall()


@pytest.fixture
def store(channel: EventChannel) -> RequestStore:
    return RequestStore(channel)


@pytest.fixture
def discovery_file(temp_dir: Path) -> Path:
    return temp_dir / "nettab-test.json"


@pytest.fixture
def isolated_config(monkeypatch, temp_dir: Path) -> Path:
    """Empty environment, working directory and home for config lookups."""
    for key in (
        "NETTAB_ENV",
        "NETTAB_MODE",
        "NETTAB_INLINE_UI",
        "NETTAB_HEADLESS",
        "NETTAB_HEADLESS_LOGS",
        "NETTAB_SILENT",
        "NETTAB_MAX_LOGS",
        "NETTAB_VERBOSE",
    ):
        monkeypatch.delenv(key, raising=False)
    home = temp_dir / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(temp_dir)
    return temp_dir
