"""Fixed-window request limiter keyed by client address.

Each key gets ``limit`` requests per ``window_s`` seconds. State lives on the
limiter instance that `rest_api.app.create_app` receives, so tests can inject
a fake clock and independent limiters per route family.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, NamedTuple, Optional


class RateLimitResult(NamedTuple):
    """Outcome of one :meth:`RateLimiter.hit` call.

    Attributes
    ----------
    success : bool
        ``False`` when the request must be rejected with HTTP 429.
    limit : int
        Requests allowed per window.
    remaining : int
        Requests left in the current window.
    reset_at : float
        Clock value (epoch seconds by default) at which the window resets.
    retry_after_s : int
        Whole seconds until the window resets (at least 1 when rejected).
    """

    success: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after_s: int


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimiter:
    """Thread-safe fixed-window counter."""

    def __init__(
        self,
        limit: int,
        window_s: float = 60.0,
        clock: Optional[Callable[[], float]] = None,
        prune_every: int = 256,
    ) -> None:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_s <= 0:
            raise ValueError("window_s must be > 0")
        self.limit = int(limit)
        self.window_s = float(window_s)
        self._clock = clock or time.time
        self._prune_every = max(1, int(prune_every))
        self._lock = threading.Lock()
        self._windows: Dict[str, _Window] = {}
        self._hits = 0

    def hit(self, key: str) -> RateLimitResult:
        now = self._clock()
        with self._lock:
            self._hits += 1
            if self._hits % self._prune_every == 0:
                self._prune_locked(now)
            window = self._windows.get(key)
            if window is None or now >= window.reset_at:
                window = _Window(count=0, reset_at=now + self.window_s)
                self._windows[key] = window
            retry_after = max(1, int(round(window.reset_at - now)))
            if window.count >= self.limit:
                return RateLimitResult(False, self.limit, 0, window.reset_at, retry_after)
            window.count += 1
            return RateLimitResult(
                True, self.limit, self.limit - window.count, window.reset_at, retry_after
            )

    def prune(self) -> int:
        """Forget expired windows; returns how many were removed."""
        with self._lock:
            return self._prune_locked(self._clock())

    def _prune_locked(self, now: float) -> int:
        stale = [key for key, window in self._windows.items() if now >= window.reset_at]
        for key in stale:
            del self._windows[key]
        return len(stale)

    @property
    def tracked_keys(self) -> int:
        """Number of clients with an open window."""
        with self._lock:
            return len(self._windows)


def client_ip(headers: Mapping[str, str], peer: Optional[str]) -> str:
    """Resolve the client address: forwarded header, real-ip header, peer, ``unknown``."""
    forwarded = headers.get("x-forwarded-for") or ""
    first = forwarded.split(",")[0].strip()
    if first:
        return first
    real = (headers.get("x-real-ip") or "").strip()
    if real:
        return real
    if peer:
        return peer
    return "unknown"
