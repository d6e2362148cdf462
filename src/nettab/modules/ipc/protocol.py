"""Newline-delimited JSON frames exchanged with viewers."""

import json
import logging
from typing import Any

from nettab.modules.store.models import RequestRecord

logger = logging.getLogger(__name__)

# Largest single frame either side will buffer.
FRAME_LIMIT = 16 * 1024 * 1024

BODY_KEYS = ("reqBody", "resBody")
TRUNCATED_MARKER = "\n[Truncated: {size} chars]"

INIT = "init"
UPDATE = "update"
REPLAY = "replay"


def encode_frame(message: dict[str, Any]) -> bytes:
    return (json.dumps(message, separators=(",", ":"), ensure_ascii=False) + "\n").encode("utf-8")


def decode_frame(line: bytes | str) -> dict[str, Any] | None:
    """Parse one line into a message object, or None if it is not one."""
    if isinstance(line, bytes):
        try:
            line = line.decode("utf-8")
        except UnicodeDecodeError:
            return None
    line = line.strip()
    if not line:
        return None
    try:
        message = json.loads(line)
    except ValueError:
        return None
    if not isinstance(message, dict) or not isinstance(message.get("type"), str):
        return None
    return message


def truncate_body(body: str, limit: int) -> str:
    if len(body) <= limit:
        return body
    return body[:limit] + TRUNCATED_MARKER.format(size=len(body))


def logs_frame(kind: str, records: list[RequestRecord]) -> bytes:
    """Encode a snapshot, shortening bodies on the wire until it fits a frame.

    The records themselves are left alone. Bodies are cut to a shared
    per-body allowance that halves until the frame is under ``FRAME_LIMIT``.
    """
    logs = [record.to_dict() for record in records]
    payload = encode_frame({"type": kind, "logs": logs})
    if len(payload) < FRAME_LIMIT:
        return payload

    limit = FRAME_LIMIT // (2 * len(logs))
    while True:
        shortened = [
            {**item, **{key: truncate_body(item[key], limit) for key in BODY_KEYS}} for item in logs
        ]
        payload = encode_frame({"type": kind, "logs": shortened})
        if len(payload) < FRAME_LIMIT or limit == 0:
            break
        limit //= 2
    if len(payload) >= FRAME_LIMIT:
        logger.warning("Snapshot of %d records exceeds the frame limit", len(logs))
    else:
        logger.debug("Truncated bodies to %d chars to fit a %s frame", limit, kind)
    return payload


def replay_frame(record: RequestRecord) -> bytes:
    return encode_frame({"type": REPLAY, "log": record.to_dict()})


def parse_logs(message: dict[str, Any]) -> list[RequestRecord] | None:
    """Records carried by an ``init``/``update`` message, None for anything else."""
    if message.get("type") not in (INIT, UPDATE):
        return None
    logs = message.get("logs")
    if not isinstance(logs, list):
        return None
    try:
        return [RequestRecord.from_dict(item) for item in logs]
    except (KeyError, TypeError, ValueError) as exc:
        logger.debug("Dropping malformed %s frame: %s", message["type"], exc)
        return None


def parse_replay(message: dict[str, Any]) -> RequestRecord | None:
    if message.get("type") != REPLAY:
        return None
    try:
        return RequestRecord.from_dict(message.get("log"))
    except (KeyError, TypeError, ValueError) as exc:
        logger.debug("Dropping malformed replay frame: %s", exc)
        return None
