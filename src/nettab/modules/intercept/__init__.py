"""Interception module -- outbound HTTP hooks and lifecycle events."""

from .body import BINARY_SENTINEL, STREAM_SENTINEL, BodyBuffer, decode_text
from .call_shapes import ClientCall, ConnectionCall, RequestTarget, normalize
from .events import (
    EVENT_KINDS,
    EventChannel,
    RequestBody,
    RequestError,
    RequestStart,
    ResponseComplete,
    ResponseHeaders,
    SizeUpdate,
    TimingUpdate,
)
from .interceptor import (
    Interceptor,
    default_channel,
    default_interceptor,
    install,
    is_active,
    uninstall,
)
from .timing import TimingTracker

__all__ = [
    "BINARY_SENTINEL",
    "STREAM_SENTINEL",
    "BodyBuffer",
    "decode_text",
    "ClientCall",
    "ConnectionCall",
    "RequestTarget",
    "normalize",
    "EVENT_KINDS",
    "EventChannel",
    "RequestBody",
    "RequestError",
    "RequestStart",
    "ResponseComplete",
    "ResponseHeaders",
    "SizeUpdate",
    "TimingUpdate",
    "Interceptor",
    "default_channel",
    "default_interceptor",
    "install",
    "is_active",
    "uninstall",
    "TimingTracker",
]
