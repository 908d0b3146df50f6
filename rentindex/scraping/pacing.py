"""
Concurrency limiting and human-like request pacing.

Both objects are owned by one fetch client (or one job) and injected where
they are needed; nothing here is module-level state.
"""

from __future__ import annotations

import random
import threading
import time
from collections import deque
from collections.abc import Callable
from datetime import datetime, timezone

from rentindex.scraping.config.models import PacingSettings

SleepFn = Callable[[float], None]
ClockFn = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ConcurrencyLimiter:
    """
    Counting semaphore that admits waiters strictly in arrival order.
    """

    def __init__(self, limit: int) -> None:
        self._limit = max(1, limit)
        self._active = 0
        self._waiters: deque[object] = deque()
        self._condition = threading.Condition()

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def active(self) -> int:
        with self._condition:
            return self._active

    def acquire(self) -> None:
        ticket = object()
        with self._condition:
            self._waiters.append(ticket)
            while self._waiters[0] is not ticket or self._active >= self._limit:
                self._condition.wait()
            self._waiters.popleft()
            self._active += 1
            # The next waiter may also fit under the limit.
            self._condition.notify_all()

    def release(self) -> None:
        with self._condition:
            if self._active <= 0:
                raise RuntimeError("ConcurrencyLimiter released more times than acquired.")
            self._active -= 1
            self._condition.notify_all()

    def __enter__(self) -> "ConcurrencyLimiter":
        self.acquire()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()


class StealthPacer:
    """
    Randomized delays that make a crawl look like a person browsing.

    All randomness, sleeping and clock reads go through injectable callables
    so tests can run deterministically and without real waits.
    """

    def __init__(
        self,
        settings: PacingSettings,
        *,
        rng: random.Random | None = None,
        sleep: SleepFn = time.sleep,
        clock: ClockFn = _utc_now,
    ) -> None:
        self._settings = settings
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._clock = clock
        self._lock = threading.Lock()
        self._since_breather = 0
        self._next_breather_at = self._draw_breather_threshold()

    @property
    def settings(self) -> PacingSettings:
        return self._settings

    def polite_delay(self) -> float:
        """
        Base delay plus jitter, occasionally extended by a long reading pause.
        """

        settings = self._settings
        with self._lock:
            seconds = settings.request_delay_base_seconds + self._rng.random() * settings.request_delay_jitter_seconds
            if self._rng.random() < settings.reading_pause_probability:
                seconds += self._uniform(settings.reading_pause_min_seconds, settings.reading_pause_max_seconds)
        return self.pause(seconds)

    def scroll_delay(self) -> float:
        settings = self._settings
        with self._lock:
            seconds = self._uniform(settings.scroll_delay_min_seconds, settings.scroll_delay_max_seconds)
        return self.pause(seconds)

    def is_night_time(self, now: datetime | None = None) -> bool:
        """
        True when the UTC hour is inside the night window; the window may wrap midnight.
        """

        hour = (now or self._clock()).astimezone(timezone.utc).hour
        start = self._settings.night_start_hour_utc
        end = self._settings.night_end_hour_utc
        if start == end:
            return False
        if start < end:
            return start <= hour < end
        return hour >= start or hour < end

    def night_idle_delay(self) -> float:
        if not self.is_night_time():
            return 0.0
        settings = self._settings
        with self._lock:
            seconds = self._uniform(settings.night_idle_min_seconds, settings.night_idle_max_seconds)
        return self.pause(seconds)

    def maybe_breather(self) -> float:
        """
        Count one processed listing; after a randomized number of them take a
        long pause. Returns the seconds slept, 0.0 when no breather was due.
        """

        settings = self._settings
        with self._lock:
            self._since_breather += 1
            if self._since_breather < self._next_breather_at:
                return 0.0
            seconds = self._uniform(settings.breather_pause_min_seconds, settings.breather_pause_max_seconds)
            self._since_breather = 0
            self._next_breather_at = self._draw_breather_threshold()
        return self.pause(seconds)

    def should_skip(self) -> bool:
        with self._lock:
            return self._rng.random() < self._settings.skip_probability

    def backoff(self, attempt: int, *, base_seconds: float, jitter_seconds: float) -> float:
        """
        Exponential backoff ``base * 2**attempt`` plus uniform jitter.
        """

        with self._lock:
            seconds = base_seconds * (2 ** max(0, attempt)) + self._rng.random() * jitter_seconds
        return self.pause(seconds)

    def _draw_breather_threshold(self) -> int:
        return self._rng.randint(self._settings.breather_every_min, self._settings.breather_every_max)

    def _uniform(self, low: float, high: float) -> float:
        if high <= low:
            return max(0.0, low)
        return self._rng.uniform(low, high)

    def pause(self, seconds: float) -> float:
        if seconds > 0:
            self._sleep(seconds)
        return seconds
