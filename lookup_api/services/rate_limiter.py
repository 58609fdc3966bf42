"""
Fixed-window request counters.
"""
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Tuple


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_seconds: int

    def headers(self) -> Dict[str, str]:
        return {
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": str(self.reset_seconds),
        }


class FixedWindowRateLimiter:
    """At most `limit` hits per key in each `window_seconds` window."""

    def __init__(
        self,
        name: str,
        limit: int,
        window_seconds: int,
        message: str,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.limit = limit
        self.window_seconds = window_seconds
        self.message = message
        self._clock = clock
        self._windows: Dict[str, Tuple[int, float]] = {}
        self._next_prune = clock() + window_seconds

    def hit(self, key: str) -> RateLimitResult:
        now = self._clock()
        if now >= self._next_prune:
            self.prune()
        count, reset_at = self._windows.get(key, (0, now + self.window_seconds))
        if now >= reset_at:
            count, reset_at = 0, now + self.window_seconds
        count += 1
        self._windows[key] = (count, reset_at)
        return RateLimitResult(
            allowed=count <= self.limit,
            limit=self.limit,
            remaining=max(self.limit - count, 0),
            reset_seconds=max(int(math.ceil(reset_at - now)), 0),
        )

    def prune(self) -> int:
        """Drop windows that have already rolled over."""
        now = self._clock()
        expired = [key for key, (_, reset_at) in self._windows.items() if reset_at <= now]
        for key in expired:
            del self._windows[key]
        self._next_prune = now + self.window_seconds
        return len(expired)

    def __len__(self) -> int:
        return len(self._windows)

    def reset(self, key: str = None) -> None:
        if key is None:
            self._windows.clear()
        else:
            self._windows.pop(key, None)


def login_limiter(clock: Callable[[], float] = time.monotonic) -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter(
        "login", 10, 15 * 60, "Too many login attempts. Please try again later.", clock=clock
    )


def search_limiter(clock: Callable[[], float] = time.monotonic) -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter(
        "search", 30, 60, "Too many requests. Please slow down.", clock=clock
    )
