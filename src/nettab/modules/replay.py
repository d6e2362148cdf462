"""Re-send a captured request for inspection."""

import logging
from typing import Any

import httpx

from nettab.modules.intercept.body import BINARY_SENTINEL, STREAM_SENTINEL, header_items
from nettab.modules.store.models import RequestRecord

logger = logging.getLogger(__name__)

# Framing headers describe the original connection, not the request.
DROPPED_HEADERS = frozenset({"content-length", "transfer-encoding", "connection"})
UNSENDABLE_BODIES = frozenset({"", BINARY_SENTINEL, STREAM_SENTINEL})


def build_request_kwargs(record: RequestRecord) -> dict[str, Any]:
    """Arguments for ``client.request`` rebuilding ``record``'s request."""
    headers = [
        (name, value)
        for name, value in header_items(record.request_headers)
        if name.lower() not in DROPPED_HEADERS
    ]
    body = record.request_body
    return {
        "method": record.method,
        "url": record.url,
        "headers": headers or None,
        "content": body.encode("utf-8") if body not in UNSENDABLE_BODIES else None,
    }


async def replay_request(record: RequestRecord, timeout: float = 30.0) -> None:
    """Issue ``record``'s request once more and discard the response.

    Failures are logged and swallowed; ``record`` itself is never modified.
    """
    try:
        kwargs = build_request_kwargs(record)
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.request(**kwargs)
    except (httpx.HTTPError, httpx.InvalidURL, TypeError, ValueError) as exc:
        logger.debug("Replay of %s %s failed: %s", record.method, record.url, exc)
        return
    logger.debug("Replayed %s %s -> %d", record.method, record.url, response.status_code)


def replay(record: RequestRecord, timeout: float = 30.0) -> None:
    """Blocking variant of :func:`replay_request`."""
    try:
        kwargs = build_request_kwargs(record)
        with httpx.Client(timeout=timeout) as client:
            response = client.request(**kwargs)
    except (httpx.HTTPError, httpx.InvalidURL, TypeError, ValueError) as exc:
        logger.debug("Replay of %s %s failed: %s", record.method, record.url, exc)
        return
    logger.debug("Replayed %s %s -> %d", record.method, record.url, response.status_code)
