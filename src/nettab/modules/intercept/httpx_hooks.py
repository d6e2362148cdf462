"""Hooks for ``httpx.Client.send`` and ``httpx.AsyncClient.send``."""

import logging
from collections.abc import AsyncIterator, Iterator
from functools import wraps
from typing import Any

import httpx

from nettab.modules.intercept.body import header_value, headers_from_pairs
from nettab.modules.intercept.call_shapes import ClientCall
from nettab.modules.intercept.events import EventChannel
from nettab.modules.intercept.http_client_hooks import HOOK_MARKER
from nettab.modules.intercept.interceptor_helpers import Exchange, observer_guard

logger = logging.getLogger(__name__)


def _capture_request_body(exchange: Exchange, request: httpx.Request) -> None:
    try:
        content = request.content
    except httpx.RequestNotRead:
        exchange.request_body.streamed = True
        return
    exchange.request_body.append(content)


def _start(channel: EventChannel, request: httpx.Request) -> Exchange:
    exchange = Exchange(channel)
    with observer_guard("httpx-start"):
        exchange.start(ClientCall(request))
        _capture_request_body(exchange, request)
        exchange.flush_request_body()
    return exchange


def _respond(exchange: Exchange, response: httpx.Response) -> None:
    exchange.respond(
        response.status_code,
        response.reason_phrase,
        headers_from_pairs(
            (header_value(name), header_value(value)) for name, value in response.headers.raw
        ),
    )


def _complete_read(exchange: Exchange, response: httpx.Response) -> None:
    with observer_guard("httpx-complete"):
        exchange.complete(
            decoded=response.content,
            transferred=exchange.content_length or response.num_bytes_downloaded,
        )


class _TeeByteStream(httpx.SyncByteStream):
    """Copies raw chunks into the exchange as the caller iterates them."""

    def __init__(self, stream: Any, exchange: Exchange):
        self._stream = stream
        self._exchange = exchange

    def __iter__(self) -> Iterator[bytes]:
        try:
            for chunk in self._stream:
                with observer_guard("httpx-chunk"):
                    self._exchange.response_body.append(chunk)
                yield chunk
        except Exception as exc:
            self._exchange.fail(exc)
            raise
        self._exchange.complete()

    def close(self) -> None:
        try:
            self._stream.close()
        finally:
            self._exchange.complete()


class _AsyncTeeByteStream(httpx.AsyncByteStream):
    def __init__(self, stream: Any, exchange: Exchange):
        self._stream = stream
        self._exchange = exchange

    async def __aiter__(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._stream:
                with observer_guard("httpx-chunk"):
                    self._exchange.response_body.append(chunk)
                yield chunk
        except Exception as exc:
            self._exchange.fail(exc)
            raise
        self._exchange.complete()

    async def aclose(self) -> None:
        try:
            await self._stream.aclose()
        finally:
            self._exchange.complete()


class HTTPXHooks:
    """Replaces ``send`` on the httpx client classes."""

    def __init__(self, channel: EventChannel):
        self.channel = channel
        self._originals: dict[type, Any] = {}

    @property
    def installed(self) -> bool:
        return bool(self._originals)

    def install(self) -> None:
        if self._originals:
            return
        for cls in (httpx.Client, httpx.AsyncClient):
            if getattr(cls.__dict__.get("send"), HOOK_MARKER, False):
                raise RuntimeError(f"{cls.__qualname__}.send is already hooked by another interceptor")

        original_send = httpx.Client.__dict__["send"]
        original_async_send = httpx.AsyncClient.__dict__["send"]
        channel = self.channel

        @wraps(original_send)
        def send(client, request, *args, **kwargs):
            exchange = _start(channel, request)
            try:
                response = original_send(client, request, *args, **kwargs)
            except Exception as exc:
                exchange.fail(exc)
                raise
            _respond(exchange, response)
            if kwargs.get("stream"):
                with observer_guard("httpx-stream"):
                    response.stream = _TeeByteStream(response.stream, exchange)
            else:
                _complete_read(exchange, response)
            return response

        @wraps(original_async_send)
        async def async_send(client, request, *args, **kwargs):
            exchange = _start(channel, request)
            try:
                response = await original_async_send(client, request, *args, **kwargs)
            except Exception as exc:
                exchange.fail(exc)
                raise
            _respond(exchange, response)
            if kwargs.get("stream"):
                with observer_guard("httpx-stream"):
                    response.stream = _AsyncTeeByteStream(response.stream, exchange)
            else:
                _complete_read(exchange, response)
            return response

        for hook in (send, async_send):
            setattr(hook, HOOK_MARKER, True)
        self._originals = {httpx.Client: original_send, httpx.AsyncClient: original_async_send}
        httpx.Client.send = send  # type: ignore[method-assign]
        httpx.AsyncClient.send = async_send  # type: ignore[method-assign]
        logger.debug("Hooked httpx client send")

    def uninstall(self) -> None:
        for cls, original in self._originals.items():
            cls.send = original
        if self._originals:
            logger.debug("Restored httpx client send")
        self._originals.clear()
