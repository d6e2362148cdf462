"""Call-shape variants and their normalization into a request target."""

from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

from nettab.modules.intercept.body import Headers, header_value, headers_from_pairs

DEFAULT_PORTS = {"http": 80, "https": 443}


@dataclass(frozen=True)
class ConnectionCall:
    """A request driven through an ``http.client`` connection.

    ``target`` is whatever was passed to ``putrequest``: usually an
    origin-form path, sometimes an absolute URL when talking to a proxy.
    """

    scheme: str
    host: str
    port: int | None
    method: str
    target: str
    headers: list[tuple[str, str]] = field(default_factory=list)


@dataclass(frozen=True)
class ClientCall:
    """A request handed to ``httpx.Client.send`` / ``AsyncClient.send``."""

    request: Any


CallShape = ConnectionCall | ClientCall


@dataclass(frozen=True)
class RequestTarget:
    method: str
    url: str
    scheme: str
    host: str
    path: str
    headers: Headers


def format_netloc(scheme: str, host: str, port: int | None) -> str:
    host = host or "localhost"
    if ":" in host and not host.startswith("["):
        host = f"[{host}]"
    if port and port != DEFAULT_PORTS.get(scheme):
        return f"{host}:{port}"
    return host


def _normalize_connection(call: ConnectionCall) -> RequestTarget:
    method = (call.method or "GET").upper()
    headers = headers_from_pairs(call.headers)
    target = call.target or "/"
    parts = urlsplit(target)
    if parts.scheme in DEFAULT_PORTS and parts.hostname:
        scheme = parts.scheme
        host = parts.hostname
        path = parts.path or "/"
        if parts.query:
            path = f"{path}?{parts.query}"
        url = f"{scheme}://{format_netloc(scheme, host, parts.port)}{path}"
        return RequestTarget(method, url, scheme, host, path, headers)

    scheme = call.scheme
    host = call.host or "localhost"
    path = target if target.startswith("/") or target == "*" else f"/{target}"
    url = f"{scheme}://{format_netloc(scheme, host, call.port)}{path}"
    return RequestTarget(method, url, scheme, host, path, headers)


def _normalize_client(call: ClientCall) -> RequestTarget:
    request = call.request
    url = request.url
    scheme = url.scheme if url.scheme in DEFAULT_PORTS else "http"
    path = url.raw_path.decode("ascii", errors="replace") or "/"
    headers = headers_from_pairs(
        (header_value(name), header_value(value)) for name, value in request.headers.raw
    )
    return RequestTarget(
        method=request.method.upper(),
        url=str(url),
        scheme=scheme,
        host=url.host,
        path=path,
        headers=headers,
    )


def normalize(call: CallShape) -> RequestTarget:
    """Reduce any supported call shape to the canonical request target."""
    match call:
        case ConnectionCall():
            return _normalize_connection(call)
        case ClientCall():
            return _normalize_client(call)
        case _:
            raise TypeError(f"Unsupported call shape: {type(call).__name__}")
