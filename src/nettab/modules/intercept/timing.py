"""Per-request clock deriving phase durations from lifecycle timestamps."""

import time
from dataclasses import dataclass, field


def _ms(seconds: float) -> float:
    return round(max(seconds, 0.0) * 1000, 3)


@dataclass
class TimingTracker:
    """Collects lifecycle timestamps (``time.perf_counter`` seconds).

    Phases whose signal never arrived contribute zero; spans are clamped so a
    late or missing timestamp never produces a negative duration.
    """

    start: float = field(default_factory=time.perf_counter)
    start_time: int = field(default_factory=lambda: int(time.time() * 1000))
    dns_end: float | None = None
    tcp_end: float | None = None
    ttfb_end: float | None = None
    download_end: float | None = None

    def mark_connected(self) -> None:
        self.tcp_end = time.perf_counter()

    def mark_reused(self) -> None:
        """The request went out on an already-open keep-alive socket."""
        self.dns_end = self.start
        self.tcp_end = self.start

    def mark_first_byte(self) -> None:
        if self.ttfb_end is None:
            self.ttfb_end = time.perf_counter()

    def mark_complete(self) -> None:
        if self.download_end is None:
            self.download_end = time.perf_counter()

    def elapsed_ms(self) -> float:
        end = self.download_end if self.download_end is not None else time.perf_counter()
        return _ms(end - self.start)

    def breakdown(self) -> dict[str, float]:
        end = self.download_end if self.download_end is not None else time.perf_counter()
        dns = _ms(self.dns_end - self.start) if self.dns_end is not None else 0.0
        tcp = _ms(self.tcp_end - (self.dns_end or self.start)) if self.tcp_end is not None else 0.0
        ttfb = (
            _ms(self.ttfb_end - (self.tcp_end or self.dns_end or self.start))
            if self.ttfb_end is not None
            else 0.0
        )
        download = _ms(end - (self.ttfb_end or self.tcp_end or self.dns_end or self.start))
        return {
            "dns": dns,
            "tcp": tcp,
            "ttfb": ttfb,
            "download": download,
            "total": _ms(end - self.start),
        }
