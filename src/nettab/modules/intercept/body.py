"""Body materialization and header normalization helpers."""

import gzip
import zlib
from collections.abc import Iterable
from typing import Any

BINARY_SENTINEL = "[Binary data]"
STREAM_SENTINEL = "[Streamed body]"

Headers = dict[str, str | list[str]]


class BodyBuffer:
    """Accumulates byte chunks without touching the stream they came from."""

    def __init__(self) -> None:
        self._chunks: list[bytes] = []
        self.size = 0
        self.streamed = False
        self.sealed = False

    def append(self, chunk: Any) -> None:
        """Record a copy of ``chunk``; ignored once the buffer is sealed."""
        if self.sealed or chunk is None:
            return
        if isinstance(chunk, str):
            data = chunk.encode("utf-8")
        elif isinstance(chunk, (bytes, bytearray, memoryview)):
            data = bytes(chunk)
        else:
            # File objects and iterables would have to be consumed to be read.
            self.streamed = True
            return
        if data:
            self._chunks.append(data)
            self.size += len(data)

    @property
    def raw(self) -> bytes:
        return b"".join(self._chunks)

    def seal(self) -> bytes:
        self.sealed = True
        return self.raw

    def text(self, content_encoding: str | None = None) -> str:
        if self.streamed and not self._chunks:
            return STREAM_SENTINEL
        return decode_text(self.raw, content_encoding)


def decompress(raw: bytes, content_encoding: str | None) -> bytes:
    """Undo ``gzip``/``deflate`` content coding; raise ValueError for others."""
    encoding = (content_encoding or "").strip().lower()
    if not raw or encoding in ("", "identity"):
        return raw
    if encoding in ("gzip", "x-gzip"):
        return gzip.decompress(raw)
    if encoding == "deflate":
        try:
            return zlib.decompress(raw)
        except zlib.error:
            return zlib.decompress(raw, -zlib.MAX_WBITS)
    raise ValueError(f"unsupported content encoding: {content_encoding}")


def decode_text(raw: bytes, content_encoding: str | None = None) -> str:
    """Best-effort UTF-8 text for display, or the binary sentinel."""
    try:
        return decompress(raw, content_encoding).decode("utf-8")
    except (UnicodeDecodeError, ValueError, EOFError, OSError, zlib.error):
        return BINARY_SENTINEL


def header_value(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("latin-1")
    return str(value)


def headers_from_pairs(pairs: Iterable[tuple[Any, Any]]) -> Headers:
    """Fold header pairs into an ordered mapping.

    Names keep the casing they were last seen with; a header that appears more
    than once maps to the list of its values in arrival order.
    """
    names: dict[str, str] = {}
    values: dict[str, list[str]] = {}
    for name, value in pairs:
        name = header_value(name)
        key = name.lower()
        names[key] = name
        values.setdefault(key, []).append(header_value(value))
    return {names[key]: vals[0] if len(vals) == 1 else vals for key, vals in values.items()}


def first_header(headers: Headers, name: str) -> str | None:
    """Case-insensitive lookup returning the first value of ``name``."""
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value[0] if isinstance(value, list) else value
    return None


def header_items(headers: Headers) -> list[tuple[str, str]]:
    """Flatten a header mapping back into pairs."""
    items: list[tuple[str, str]] = []
    for key, value in headers.items():
        if isinstance(value, list):
            items.extend((key, v) for v in value)
        else:
            items.append((key, value))
    return items
