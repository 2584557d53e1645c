"""
Request-rate ceiling for JWKS fetches. In-memory sliding window, safe to call from worker threads.
"""
import math
import threading
import time

_WINDOW_SECONDS = 60


class SlidingWindowLimiter:
    def __init__(self, limit: int, window_seconds: int = _WINDOW_SECONDS):
        self.limit = limit
        self.window_seconds = window_seconds
        self._timestamps: list[float] = []
        self._lock = threading.Lock()

    def check_and_consume(self) -> tuple[bool, int | None]:
        """
        Check if we are under the limit for the sliding window; if so, record this request.
        Returns (allowed, retry_after_seconds). When not allowed, retry_after_seconds is >= 1.
        """
        if self.limit <= 0:
            return True, None
        now = time.monotonic()
        with self._lock:
            cutoff = now - self.window_seconds
            self._timestamps[:] = [t for t in self._timestamps if t > cutoff]
            if len(self._timestamps) >= self.limit:
                oldest = min(self._timestamps)
                retry_after = max(1, math.ceil(self.window_seconds - (now - oldest)))
                return False, retry_after
            self._timestamps.append(now)
            return True, None
