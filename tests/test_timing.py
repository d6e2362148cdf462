"""Tests for the per-request timing tracker."""

from nettab.modules.intercept.timing import TimingTracker


def _tracker(**marks) -> TimingTracker:
    tracker = TimingTracker(start=100.0, start_time=1_700_000_000_000)
    for name, value in marks.items():
        setattr(tracker, name, value)
    return tracker


class TestTimingTracker:
    def test_full_breakdown(self):
        tracker = _tracker(dns_end=100.010, tcp_end=100.030, ttfb_end=100.080, download_end=100.100)
        timing = tracker.breakdown()
        assert timing == {"dns": 10.0, "tcp": 20.0, "ttfb": 50.0, "download": 20.0, "total": 100.0}

    def test_missing_phases_contribute_zero(self):
        tracker = _tracker(ttfb_end=100.050, download_end=100.060)
        timing = tracker.breakdown()
        assert timing["dns"] == 0.0
        assert timing["tcp"] == 0.0
        assert timing["ttfb"] == 50.0
        assert timing["download"] == 10.0
        assert timing["total"] == 60.0

    def test_tcp_without_dns_measures_from_start(self):
        tracker = _tracker(tcp_end=100.005, ttfb_end=100.010, download_end=100.010)
        assert tracker.breakdown()["tcp"] == 5.0

    def test_negative_spans_are_clamped(self):
        tracker = _tracker(dns_end=100.050, tcp_end=100.020, ttfb_end=100.060, download_end=100.070)
        timing = tracker.breakdown()
        assert timing["tcp"] == 0.0
        assert all(value >= 0 for value in timing.values())

    def test_reused_socket_has_no_connection_phases(self):
        tracker = TimingTracker()
        tracker.mark_reused()
        tracker.mark_first_byte()
        tracker.mark_complete()
        timing = tracker.breakdown()
        assert timing["dns"] == 0.0
        assert timing["tcp"] == 0.0

    def test_first_byte_and_complete_are_set_once(self):
        tracker = TimingTracker()
        tracker.mark_first_byte()
        first = tracker.ttfb_end
        tracker.mark_first_byte()
        assert tracker.ttfb_end == first
        tracker.mark_complete()
        done = tracker.download_end
        tracker.mark_complete()
        assert tracker.download_end == done

    def test_elapsed_is_frozen_after_complete(self):
        tracker = _tracker(download_end=100.25)
        assert tracker.elapsed_ms() == 250.0

    def test_start_time_is_epoch_milliseconds(self):
        tracker = TimingTracker()
        assert tracker.start_time > 1_600_000_000_000
