import logging
import time
from collections import deque
from threading import Lock
from typing import Optional

from fastapi import HTTPException, Request

from feedback_tracker.core.config import get_settings

logger = logging.getLogger(__name__)

# One key per client IP; far above what a single login form sees.
_MAX_TRACKED_CLIENTS = 10_000


class SlidingWindowRateLimiter:
    """Per-key attempt log over a fixed window.

    Idle keys are swept at most once per window, or sooner when the table
    reaches ``max_keys``.
    """

    def __init__(self, window_seconds: int, *, max_keys: int = _MAX_TRACKED_CLIENTS) -> None:
        self.window_seconds = max(1, int(window_seconds))
        self._max_keys = max_keys
        self._attempts: dict[str, deque[float]] = {}
        self._lock = Lock()
        self._next_sweep_at = 0.0

    def hit(self, key: str, limit: int) -> bool:
        """Record an attempt for ``key``; False once ``limit`` attempts fall inside the window."""
        if limit <= 0:
            return True
        now = time.monotonic()
        cutoff = now - self.window_seconds
        with self._lock:
            if now >= self._next_sweep_at or len(self._attempts) >= self._max_keys:
                self._sweep(cutoff)
                self._next_sweep_at = now + self.window_seconds

            attempts = self._attempts.setdefault(key, deque())
            _expire(attempts, cutoff)
            if len(attempts) >= limit:
                return False
            attempts.append(now)
            return True

    def tracked_keys(self) -> list[str]:
        with self._lock:
            return list(self._attempts)

    def _sweep(self, cutoff: float) -> None:
        for key in list(self._attempts):
            attempts = self._attempts[key]
            _expire(attempts, cutoff)
            if not attempts:
                del self._attempts[key]


def _expire(attempts: deque[float], cutoff: float) -> None:
    while attempts and attempts[0] <= cutoff:
        attempts.popleft()


_login_limiter: Optional[SlidingWindowRateLimiter] = None
_login_limiter_lock = Lock()


def get_login_rate_limiter() -> SlidingWindowRateLimiter:
    """Limiter sized from settings; rebuilt when the configured window changes."""
    global _login_limiter
    window = get_settings().rate_limit_login_window_seconds
    with _login_limiter_lock:
        if _login_limiter is None or _login_limiter.window_seconds != window:
            _login_limiter = SlidingWindowRateLimiter(window)
        return _login_limiter


def reset_login_rate_limiter() -> None:
    global _login_limiter
    with _login_limiter_lock:
        _login_limiter = None


def get_client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


def enforce_login_rate_limit(request: Request) -> None:
    settings = get_settings()
    if not settings.rate_limit_login_enabled:
        return
    ip = get_client_ip(request) or "unknown"
    if not get_login_rate_limiter().hit(f"login:ip:{ip}", settings.rate_limit_login_attempts):
        logger.warning("Login rate limit hit for ip=%s", ip)
        raise HTTPException(429, "Too many login attempts")
