"""
tests/test_pacing.py

Deterministic tests for the stealth pacer and the FIFO concurrency limiter.
No real sleeping: every pause is recorded.
"""

from __future__ import annotations

import random
import threading
import time
from datetime import datetime, timezone

import pytest

from conftest import RecordingSleep, make_pacing_settings
from rentindex.scraping.pacing import ConcurrencyLimiter, StealthPacer


def _pacer(sleeps: RecordingSleep, **overrides: object) -> StealthPacer:
    return StealthPacer(
        make_pacing_settings(**overrides),
        rng=random.Random(42),
        sleep=sleeps,
        clock=lambda: datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc),
    )


# ---------------------------------------------------------------------------
# Delays
# ---------------------------------------------------------------------------


class TestDelays:
    def test_polite_delay_within_base_plus_jitter(self, sleeps: RecordingSleep) -> None:
        pacer = _pacer(sleeps, request_delay_base_seconds=1.2, request_delay_jitter_seconds=0.8)
        for _ in range(50):
            seconds = pacer.polite_delay()
            assert 1.2 <= seconds <= 2.0
        assert len(sleeps.calls) == 50

    def test_reading_pause_extends_polite_delay(self, sleeps: RecordingSleep) -> None:
        pacer = _pacer(
            sleeps,
            request_delay_base_seconds=1.0,
            reading_pause_probability=1.0,
            reading_pause_min_seconds=2.0,
            reading_pause_max_seconds=6.0,
        )
        seconds = pacer.polite_delay()
        assert 3.0 <= seconds <= 7.0

    def test_scroll_delay_range(self, sleeps: RecordingSleep) -> None:
        pacer = _pacer(sleeps, scroll_delay_min_seconds=0.5, scroll_delay_max_seconds=1.5)
        assert all(0.5 <= pacer.scroll_delay() <= 1.5 for _ in range(20))

    def test_zero_delay_does_not_sleep(self, sleeps: RecordingSleep) -> None:
        pacer = _pacer(sleeps)
        assert pacer.polite_delay() == 0.0
        assert sleeps.calls == []

    def test_backoff_is_exponential(self, sleeps: RecordingSleep) -> None:
        pacer = _pacer(sleeps)
        assert [pacer.backoff(attempt, base_seconds=1.0, jitter_seconds=0.0) for attempt in range(3)] == [
            1.0,
            2.0,
            4.0,
        ]
        assert sleeps.calls == [1.0, 2.0, 4.0]

    def test_same_seed_gives_same_sequence(self) -> None:
        first, second = RecordingSleep(), RecordingSleep()
        for sleeps in (first, second):
            pacer = _pacer(sleeps, request_delay_base_seconds=1.0, request_delay_jitter_seconds=1.0)
            for _ in range(5):
                pacer.polite_delay()
        assert first.calls == second.calls


# ---------------------------------------------------------------------------
# Night window, breathers, skips
# ---------------------------------------------------------------------------


class TestNightWindow:
    @pytest.mark.parametrize(
        ("start", "end", "hour", "expected"),
        [
            (17, 23, 18, True),
            (17, 23, 23, False),
            (17, 23, 16, False),
            (22, 4, 23, True),
            (22, 4, 2, True),
            (22, 4, 12, False),
            (5, 5, 5, False),
        ],
    )
    def test_is_night_time(self, sleeps: RecordingSleep, start: int, end: int, hour: int, expected: bool) -> None:
        pacer = _pacer(sleeps, night_start_hour_utc=start, night_end_hour_utc=end)
        now = datetime(2026, 10, 19, hour, 30, tzinfo=timezone.utc)
        assert pacer.is_night_time(now) is expected

    def test_night_idle_only_at_night(self, sleeps: RecordingSleep) -> None:
        day = _pacer(sleeps, night_start_hour_utc=17, night_end_hour_utc=23, night_idle_min_seconds=3.0)
        assert day.night_idle_delay() == 0.0

        night = _pacer(
            sleeps,
            night_start_hour_utc=10,
            night_end_hour_utc=14,
            night_idle_min_seconds=3.0,
            night_idle_max_seconds=8.0,
        )
        assert 3.0 <= night.night_idle_delay() <= 8.0


class TestBreatherAndSkip:
    def test_breather_after_threshold(self, sleeps: RecordingSleep) -> None:
        pacer = _pacer(
            sleeps,
            breather_every_min=3,
            breather_every_max=3,
            breather_pause_min_seconds=20.0,
            breather_pause_max_seconds=40.0,
        )
        slept = [pacer.maybe_breather() for _ in range(6)]
        assert slept[0] == slept[1] == slept[3] == slept[4] == 0.0
        assert 20.0 <= slept[2] <= 40.0
        assert 20.0 <= slept[5] <= 40.0

    def test_skip_probability_bounds(self, sleeps: RecordingSleep) -> None:
        assert not any(_pacer(sleeps, skip_probability=0.0).should_skip() for _ in range(100))
        assert all(_pacer(sleeps, skip_probability=1.0).should_skip() for _ in range(100))


# ---------------------------------------------------------------------------
# Concurrency limiter
# ---------------------------------------------------------------------------


class TestConcurrencyLimiter:
    def test_never_exceeds_limit(self) -> None:
        limiter = ConcurrencyLimiter(2)
        peak = 0
        lock = threading.Lock()

        def work() -> None:
            nonlocal peak
            with limiter:
                with lock:
                    peak = max(peak, limiter.active)
                time.sleep(0.01)

        threads = [threading.Thread(target=work) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert peak <= 2
        assert limiter.active == 0

    def test_release_without_acquire_raises(self) -> None:
        with pytest.raises(RuntimeError):
            ConcurrencyLimiter(1).release()

    def test_limit_is_at_least_one(self) -> None:
        assert ConcurrencyLimiter(0).limit == 1
