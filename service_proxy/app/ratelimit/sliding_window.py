"""
Per-caller mutation rate limiter for the proxy.
"""

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from shared.logging import get_logger


IDEMPOTENT_METHODS = frozenset({"GET", "HEAD"})

DEFAULT_LIMIT = 10
DEFAULT_WINDOW_SECONDS = 60.0
DEFAULT_MAX_TRACKED_CALLERS = 10000


@dataclass
class RateLimitRecord:
    """Mutation-count state for one caller identity."""

    count: int
    window_reset_at: float


class MutationRateLimiter:
    """Fixed-ceiling window counter applied to non-idempotent requests.

    The record map is bounded by ``max_tracked_callers``: when a new caller
    arrives at capacity, records whose window already lapsed are swept, and
    if that frees nothing the least recently seen caller is forgotten.
    """

    def __init__(self,
                 limit: int = DEFAULT_LIMIT,
                 window_seconds: float = DEFAULT_WINDOW_SECONDS,
                 clock: Callable[[], float] = time.time,
                 max_tracked_callers: int = DEFAULT_MAX_TRACKED_CALLERS):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        if max_tracked_callers < 1:
            raise ValueError("max_tracked_callers must be at least 1")
        self.limit = limit
        self.window_seconds = window_seconds
        self.max_tracked_callers = max_tracked_callers
        self._clock = clock
        self._records: "OrderedDict[str, RateLimitRecord]" = OrderedDict()
        self._lock = threading.Lock()
        self.logger = get_logger("proxy.rate_limiter")

    @staticmethod
    def is_idempotent(method: str) -> bool:
        return method.upper() in IDEMPOTENT_METHODS

    def check_and_record(self, caller_id: str, method: str) -> bool:
        """Return whether the request may proceed, counting it if it does."""
        if self.is_idempotent(method):
            return True

        with self._lock:
            now = self._clock()
            record = self._records.get(caller_id)
            if record is None:
                self._make_room(now)
                record = RateLimitRecord(count=0, window_reset_at=now + self.window_seconds)
                self._records[caller_id] = record
            else:
                self._records.move_to_end(caller_id)

            if now > record.window_reset_at:
                record.count = 0
                record.window_reset_at = now + self.window_seconds

            if record.count >= self.limit:
                self.logger.warning(
                    "Mutation rate limit exceeded",
                    caller_id=caller_id,
                    method=method,
                    count=record.count,
                    limit=self.limit,
                    reset_in_seconds=round(record.window_reset_at - now, 3),
                )
                return False

            record.count += 1
            return True

    def _make_room(self, now: float) -> None:
        if len(self._records) < self.max_tracked_callers:
            return

        expired = [caller for caller, record in self._records.items() if now > record.window_reset_at]
        for caller in expired:
            del self._records[caller]

        while len(self._records) >= self.max_tracked_callers:
            dropped, _ = self._records.popitem(last=False)
            self.logger.debug("Dropped rate limit record at capacity", caller_id=dropped)

        if expired:
            self.logger.debug("Swept expired rate limit records", swept=len(expired))

    def get_record(self, caller_id: str) -> Optional[RateLimitRecord]:
        with self._lock:
            record = self._records.get(caller_id)
            if record is None:
                return None
            return RateLimitRecord(count=record.count, window_reset_at=record.window_reset_at)

    @property
    def tracked_callers(self) -> int:
        with self._lock:
            return len(self._records)

    def snapshot(self, caller_id: str) -> Dict[str, Any]:
        """Current limit, remaining budget and reset delay for a caller."""
        now = self._clock()
        record = self.get_record(caller_id)
        if record is None or now > record.window_reset_at:
            return {"limit": self.limit, "remaining": self.limit, "reset_in_seconds": self.window_seconds}
        return {
            "limit": self.limit,
            "remaining": max(0, self.limit - record.count),
            "reset_in_seconds": max(0.0, round(record.window_reset_at - now, 3)),
        }
