"""Simple per-client sliding-window rate limiter for voice turns."""

import threading
import time
from typing import Callable, Dict, List

from errors import ErrorCode, TurnError


class RateLimiter:
    """Allow at most ``max_requests`` per client within ``window_seconds``."""

    def __init__(self, max_requests: int = 100, window_seconds: float = 900, clock: Callable[[], float] = time.time):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._request_log: Dict[str, List[float]] = {}
        self._last_purge = clock()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._request_log)

    def check(self, client_key: str) -> None:
        """
        Record one request for ``client_key``.

        Raises:
            TurnError: RATE_LIMITED once the window is full
        """
        now = self._clock()
        with self._lock:
            # At most one full pass per window
            if now - self._last_purge >= self.window_seconds:
                self._purge(now)

            recent = self._recent(client_key, now)
            if len(recent) >= self.max_requests:
                self._request_log[client_key] = recent
                raise TurnError(ErrorCode.RATE_LIMITED, 429, "Too many requests, please try again later.")
            recent.append(now)
            self._request_log[client_key] = recent

    def purge(self) -> int:
        """Drop clients with no request inside the window; returns how many were dropped."""
        now = self._clock()
        with self._lock:
            return self._purge(now)

    def _recent(self, client_key: str, now: float) -> List[float]:
        return [t for t in self._request_log.get(client_key, []) if now - t < self.window_seconds]

    def _purge(self, now: float) -> int:
        stale = [key for key in self._request_log if not self._recent(key, now)]
        for key in stale:
            del self._request_log[key]
        self._last_purge = now
        return len(stale)
