"""Request record types and their wire form."""

import copy
from dataclasses import dataclass, field
from typing import Any

from nettab.modules.intercept.body import Headers

PENDING = "PENDING"
ERROR = "ERROR"

RequestStatus = int | str


def _wire_headers(value: Any, name: str) -> Headers:
    if not value:
        return {}
    if not isinstance(value, dict):
        raise TypeError(f"{name} must be an object")
    for key, item in value.items():
        values = item if isinstance(item, list) else [item]
        if not all(isinstance(v, str) for v in values):
            raise TypeError(f"{name}[{key!r}] must be a string or a list of strings")
    return dict(value)


@dataclass
class TimingBreakdown:
    """Phase durations in milliseconds."""

    dns: float = 0.0
    tcp: float = 0.0
    ttfb: float = 0.0
    download: float = 0.0
    total: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {
            "dns": self.dns,
            "tcp": self.tcp,
            "ttfb": self.ttfb,
            "download": self.download,
            "total": self.total,
        }


@dataclass
class SizeInfo:
    """Wire bytes versus decoded body length."""

    transferred: int = 0
    resource: int = 0
    encoding: str | None = None

    @property
    def savings(self) -> int:
        """Percentage saved by compression, 0 when nothing was saved."""
        if self.transferred > 0 and self.resource > self.transferred:
            return round((1 - self.transferred / self.resource) * 100)
        return 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "transferred": self.transferred,
            "resource": self.resource,
            "encoding": self.encoding,
        }


@dataclass
class RequestRecord:
    """Single captured exchange."""

    id: str
    method: str = "GET"
    url: str = ""
    scheme: str = "http"
    host: str = ""
    path: str = "/"
    status: RequestStatus = PENDING
    start_time: int = 0
    duration: float = 0.0

    request_headers: Headers = field(default_factory=dict)
    request_body: str = ""
    response_headers: Headers = field(default_factory=dict)
    response_body: str = ""

    error: str | None = None
    timing: TimingBreakdown | None = None
    size: SizeInfo | None = None

    @property
    def is_pending(self) -> bool:
        return self.status == PENDING

    @property
    def is_error(self) -> bool:
        return self.status == ERROR

    def copy(self) -> "RequestRecord":
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the camelCase form used on the IPC wire."""
        data: dict[str, Any] = {
            "id": self.id,
            "method": self.method,
            "url": self.url,
            "scheme": self.scheme,
            "host": self.host,
            "path": self.path,
            "status": self.status,
            "startTime": self.start_time,
            "duration": self.duration,
            "reqHeaders": copy.deepcopy(self.request_headers),
            "reqBody": self.request_body,
            "resHeaders": copy.deepcopy(self.response_headers),
            "resBody": self.response_body,
        }
        if self.error is not None:
            data["error"] = self.error
        if self.timing is not None:
            data["timing"] = self.timing.to_dict()
        if self.size is not None:
            data["size"] = self.size.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RequestRecord":
        """Build a record from its wire form.

        Raises ``KeyError``/``TypeError``/``ValueError`` when ``data`` is not a
        usable record.
        """
        if not isinstance(data, dict):
            raise TypeError(f"record must be an object, got {type(data).__name__}")
        record_id = data["id"]
        if not isinstance(record_id, str) or not record_id:
            raise ValueError("record id must be a non-empty string")

        status = data.get("status", PENDING)
        if not isinstance(status, int) and status not in (PENDING, ERROR):
            raise ValueError(f"invalid status: {status!r}")

        timing = data.get("timing")
        size = data.get("size")
        return cls(
            id=record_id,
            method=str(data.get("method", "GET")),
            url=str(data.get("url", "")),
            scheme=str(data.get("scheme", data.get("protocol", "http"))),
            host=str(data.get("host", "")),
            path=str(data.get("path", "/")),
            status=status,
            start_time=int(data.get("startTime", 0)),
            duration=float(data.get("duration", 0)),
            request_headers=_wire_headers(data.get("reqHeaders"), "reqHeaders"),
            request_body=str(data.get("reqBody", "")),
            response_headers=_wire_headers(data.get("resHeaders"), "resHeaders"),
            response_body=str(data.get("resBody", "")),
            error=data.get("error"),
            timing=TimingBreakdown(**timing) if isinstance(timing, dict) else None,
            size=SizeInfo(**size) if isinstance(size, dict) else None,
        )
