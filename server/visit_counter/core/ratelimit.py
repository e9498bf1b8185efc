"""Per-client request rate limiting.

Fixed-window accounting keyed by client address. No framework dependencies;
the HTTP layer asks ``hit()`` for a decision and renders it.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable


@dataclass
class ClientWindow:
    """Requests seen from one client in its current window."""
    started_at: float         # clock() timestamp of the first request
    hits: int = 0


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_after: float        # seconds until the client's window rolls over

    @property
    def retry_after(self) -> int:
        return max(1, math.ceil(self.reset_after))


class RateLimiter:
    """Thread-safe fixed-window rate limiter.

    A client may make ``max_requests`` requests per ``window_seconds``. The
    window starts at the client's first request and is reset, not slid, once
    it elapses.
    """

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 900.0,
        clock: Callable[[], float] = time.monotonic,
        prune_interval_seconds: float = 1.0,
    ) -> None:
        self._lock = threading.Lock()
        self._max = max_requests
        self._window = window_seconds
        self._clock = clock
        self._prune_interval = prune_interval_seconds
        self._last_prune: float | None = None

        # client key -> ClientWindow
        self._clients: dict[str, ClientWindow] = {}

    def hit(self, client: str) -> RateLimitDecision:
        """Count a request from ``client`` and decide whether to admit it."""
        now = self._clock()
        with self._lock:
            if self._last_prune is None or now - self._last_prune >= self._prune_interval:
                self._prune_expired(now)
                self._last_prune = now
            window = self._clients.get(client)
            if window is None or window.started_at <= now - self._window:
                window = ClientWindow(started_at=now)
                self._clients[client] = window
            window.hits += 1
            reset_after = window.started_at + self._window - now
            return RateLimitDecision(
                allowed=window.hits <= self._max,
                limit=self._max,
                remaining=max(0, self._max - window.hits),
                reset_after=reset_after,
            )

    def reset(self) -> None:
        with self._lock:
            self._clients.clear()

    def tracked_clients(self) -> int:
        with self._lock:
            return len(self._clients)

    def _prune_expired(self, now: float) -> None:
        """Remove windows that have elapsed. Caller holds lock."""
        cutoff = now - self._window
        stale = [key for key, w in self._clients.items() if w.started_at <= cutoff]
        for key in stale:
            del self._clients[key]
