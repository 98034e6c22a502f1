from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please wait a moment before sending more messages."


@dataclass
class _Window:
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int


class RateLimiter:
    """Fixed-window request counter keyed by member identity.

    Each key opens its own window on its first request; windows never
    interact across keys and live only in process memory. Expired windows are
    swept once `max_keys` keys are tracked.
    """

    def __init__(
        self,
        max_requests: int = 30,
        window_sec: float = 60,
        clock: Callable[[], float] = time.monotonic,
        max_keys: int = 10_000,
    ) -> None:
        self._max_requests = max(1, max_requests)
        self._window_sec = window_sec
        self._clock = clock
        self._max_keys = max(1, max_keys)
        self._windows: dict[str, _Window] = {}

    def check(self, key: str) -> RateLimitDecision:
        """Count one request for `key` and report whether it may proceed."""

        now = self._clock()
        window = self._windows.get(key)
        if window is None and len(self._windows) >= self._max_keys:
            self._sweep(now)
        if window is None or now > window.reset_at:
            self._windows[key] = _Window(count=1, reset_at=now + self._window_sec)
            return RateLimitDecision(allowed=True, remaining=self._max_requests - 1)
        if window.count >= self._max_requests:
            return RateLimitDecision(allowed=False, remaining=0)
        window.count += 1
        return RateLimitDecision(allowed=True, remaining=self._max_requests - window.count)

    @property
    def tracked_keys(self) -> int:
        return len(self._windows)

    def _sweep(self, now: float) -> None:
        expired = [key for key, window in self._windows.items() if now > window.reset_at]
        for key in expired:
            del self._windows[key]

    def reset(self, key: str | None = None) -> None:
        if key is None:
            self._windows.clear()
        else:
            self._windows.pop(key, None)
