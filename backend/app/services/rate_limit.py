"""
In-memory sliding-window rate limiting keyed by caller identity.

State lives in the process, so limits are per worker. The form endpoint
only needs a coarse cap (a handful of submissions per hour per caller).
"""

import threading
import time
from collections import deque
from typing import Callable


class SlidingWindowRateLimiter:
    """Allow at most ``max_calls`` per ``window_seconds`` for each key."""

    def __init__(
        self,
        max_calls: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_calls = max_calls
        self.window_seconds = window_seconds
        self._clock = clock
        self._history: dict[str, deque[float]] = {}
        self._lock = threading.Lock()

    def allow(self, key: str) -> bool:
        """Record a call for ``key`` and return False when it is over the limit."""
        now = self._clock()
        with self._lock:
            self._prune_locked(now)
            history = self._history.setdefault(key, deque())
            if len(history) >= self.max_calls:
                return False
            history.append(now)
            return True

    def _prune_locked(self, now: float) -> None:
        # Drop keys whose window has emptied
        for key in list(self._history):
            history = self._history[key]
            while history and now - history[0] >= self.window_seconds:
                history.popleft()
            if not history:
                del self._history[key]

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._history)

    def reset(self) -> None:
        with self._lock:
            self._history.clear()
