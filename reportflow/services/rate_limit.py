"""In-memory fixed-window rate limiting keyed by caller and endpoint."""

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class RateLimitResult:
    """Outcome of a rate-limit check."""

    allowed: bool
    limit: int
    remaining: int = 0
    retry_after: Optional[int] = None  # seconds until the window resets


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimiter:
    """Fixed-window counter: at most ``max_requests`` per ``window_seconds``."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self._lock = threading.Lock()
        self._windows: Dict[str, _Window] = {}

    def check(self, identifier: str, endpoint: str) -> RateLimitResult:
        """Count one request and report whether it may proceed."""
        key = f"{identifier}:{endpoint}"
        now = self.clock()

        with self._lock:
            self._evict(now)
            window = self._windows.get(key)

            if window is None or window.reset_at <= now:
                self._windows[key] = _Window(count=1, reset_at=now + self.window_seconds)
                return RateLimitResult(True, self.max_requests, self.max_requests - 1)

            if window.count >= self.max_requests:
                retry_after = max(math.ceil(window.reset_at - now), 1)
                logger.warning(f"Rate limit exceeded for {identifier[:10]}... on {endpoint}")
                return RateLimitResult(False, self.max_requests, 0, retry_after)

            window.count += 1
            return RateLimitResult(True, self.max_requests, self.max_requests - window.count)

    def _evict(self, now: float) -> None:
        expired = [key for key, window in self._windows.items() if window.reset_at <= now]
        for key in expired:
            del self._windows[key]

    def reset(self) -> None:
        """Forget all counters."""
        with self._lock:
            self._windows.clear()
