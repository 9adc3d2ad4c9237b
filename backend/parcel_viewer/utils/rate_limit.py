import time
from collections import defaultdict, deque
from typing import Deque, Dict

from .logging import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """Sliding-window limit on map interactions per client address."""

    def __init__(self, max_requests: int = 100, window_seconds: int = 60):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._history: Dict[str, Deque[float]] = defaultdict(deque)

    def _prune(self, client: str, now: float) -> Deque[float]:
        history = self._history[client]
        cutoff = now - self.window_seconds
        while history and history[0] < cutoff:
            history.popleft()
        return history

    def is_allowed(self, client: str) -> bool:
        now = time.monotonic()
        history = self._prune(client, now)
        if len(history) >= self.max_requests:
            logger.warning("Rate limit exceeded", extra={'client': client})
            return False
        history.append(now)
        return True

    def reset(self) -> None:
        self._history.clear()


_rate_limiter = None


def get_rate_limiter(max_requests: int = 100, window_seconds: int = 60) -> RateLimiter:
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter(max_requests=max_requests, window_seconds=window_seconds)
        logger.info(f"Initialized rate limiter: {max_requests} requests per {window_seconds}s")
    return _rate_limiter
