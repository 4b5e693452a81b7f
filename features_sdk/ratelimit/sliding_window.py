"""
Sliding-window rate limiter for outbound analytics events.
"""

from collections import deque
from typing import Callable, Deque, Dict, Optional, TypeVar

from shared.errors import InvalidArgument
from shared.logging import get_logger

from ..clock import Clock, system_clock

R = TypeVar("R")

ONE_MINUTE_MS = 60 * 1000


class SlidingWindowRateLimiter:
    """Per-key admission control over a trailing time window.

    Rejected calls are dropped, never queued. State is owned by the
    instance, one limiter per client.
    """

    def __init__(
        self,
        events_per_minute: int,
        *,
        window_ms: float = ONE_MINUTE_MS,
        clock: Clock = system_clock,
    ):
        if not isinstance(events_per_minute, int) or events_per_minute <= 0:
            raise InvalidArgument("events_per_minute must be greater than 0")
        if window_ms <= 0:
            raise InvalidArgument("window_ms must be greater than 0")

        self.events_per_minute = events_per_minute
        self.window_ms = window_ms
        self.clock = clock
        self.logger = get_logger("features_sdk.rate_limiter")
        self._events_by_key: Dict[str, Deque[float]] = {}
        self._last_sweep = self.clock()

    def is_allowed(self, key: str) -> bool:
        """Admit and record one event for ``key`` if the window has room."""
        now = self.clock()
        if now - self._last_sweep > self.window_ms:
            self._sweep(now)

        events = self._events_by_key.setdefault(key, deque())
        while events and now - events[0] > self.window_ms:
            events.popleft()

        if len(events) >= self.events_per_minute:
            self.logger.debug("Rate limit exceeded", key=key)
            return False

        events.append(now)
        return True

    def _sweep(self, now: float) -> None:
        """Forget keys whose newest event has left the window."""
        idle = [key for key, events in self._events_by_key.items()
                if not events or now - events[-1] > self.window_ms]
        for key in idle:
            del self._events_by_key[key]
        self._last_sweep = now

    def rate_limited(self, key: str, func: Callable[[], R]) -> Optional[R]:
        """Call ``func`` if admitted; otherwise return None."""
        if not self.is_allowed(key):
            return None
        return func()

    def clear(self) -> None:
        self._events_by_key.clear()

    def __len__(self) -> int:
        return len(self._events_by_key)
