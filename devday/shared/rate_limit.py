from __future__ import annotations

import logging
import time

from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter

from .errors import RateLimitedError

logger = logging.getLogger("devday.admission")


class RateLimiter:
    """Per-caller fixed-window request limiter.

    Each caller gets ``max_requests`` admissions per ``window_seconds``
    window, counted separately per ``scope``. The window opens on the
    caller's first request and resets once it has elapsed. Counters live in
    ``limits``' memory storage, which also expires idle caller keys.
    """

    def __init__(self, max_requests: int = 20, window_seconds: int = 60):
        self.max_requests = int(max_requests)
        self.window_seconds = int(window_seconds)
        self._storage = MemoryStorage()
        self._limiter = FixedWindowRateLimiter(self._storage)
        self._items: dict[str, RateLimitItemPerSecond] = {}

    def _item(self, scope: str) -> RateLimitItemPerSecond:
        item = self._items.get(scope)
        if item is None:
            item = RateLimitItemPerSecond(
                self.max_requests, self.window_seconds, namespace=f"devday-{scope}"
            )
            self._items[scope] = item
        return item

    def check(self, caller: str | None, scope: str = "issue") -> None:
        """Admit one request for ``caller`` or raise :class:`RateLimitedError`."""
        key = caller or "anonymous"
        item = self._item(scope)
        if self._limiter.hit(item, key):
            return
        reset_at, _ = self._limiter.get_window_stats(item, key)
        retry_after = max(1.0, reset_at - time.time())
        logger.warning(
            "[RATE-LIMIT] caller=%s scope=%s retry_after=%.0f", key, scope, retry_after
        )
        raise RateLimitedError(
            "Too many requests, please try again later", retry_after=retry_after
        )

    def remaining(self, caller: str | None, scope: str = "issue") -> int:
        _, remaining = self._limiter.get_window_stats(self._item(scope), caller or "anonymous")
        return remaining

    def reset(self) -> None:
        self._storage.reset()

    def snapshot(self) -> dict:
        return {
            "maxRequests": self.max_requests,
            "windowSeconds": self.window_seconds,
        }
