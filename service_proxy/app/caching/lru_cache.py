"""
Bounded LRU cache for upstream responses.
"""

import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from shared.logging import get_logger


DEFAULT_MAX_SIZE = 100


@dataclass(frozen=True)
class CacheEntry:
    """One cached upstream response."""

    signature: str
    body: bytes
    response_headers: Dict[str, str] = field(default_factory=dict)
    validator: Optional[str] = None
    expires_at: float = 0.0

    def is_fresh(self, now: float) -> bool:
        return self.expires_at > now


class BoundedCache:
    """Fixed-capacity cache ordered by recency of access.

    Reads and writes both refresh recency; when an insert finds the cache
    full, the least recently accessed entry is evicted. Expiry plays no part
    in eviction.
    """

    def __init__(self, max_size: int = DEFAULT_MAX_SIZE,
                 on_evict: Optional[Callable[[str], None]] = None):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._max_size = max_size
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.RLock()
        self._on_evict = on_evict
        self.logger = get_logger("proxy.cache")

    @property
    def max_size(self) -> int:
        return self._max_size

    def get(self, signature: str) -> Optional[CacheEntry]:
        with self._lock:
            entry = self._entries.get(signature)
            if entry is None:
                return None
            self._entries.move_to_end(signature)
            return entry

    def put(self, signature: str, entry: CacheEntry) -> None:
        with self._lock:
            self._entries.pop(signature, None)
            while len(self._entries) >= self._max_size:
                evicted, _ = self._entries.popitem(last=False)
                self.logger.debug("Evicted cache entry", signature=evicted)
                if self._on_evict is not None:
                    self._on_evict(evicted)
            self._entries[signature] = entry

    def has(self, signature: str) -> bool:
        """Membership test that leaves recency untouched."""
        with self._lock:
            return signature in self._entries

    def delete(self, signature: str) -> bool:
        with self._lock:
            return self._entries.pop(signature, None) is not None

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def __len__(self) -> int:
        return self.size()

    def utilization(self) -> float:
        return round(self.size() / self._max_size, 4)

    def stats(self) -> Dict[str, Any]:
        """Cache utilisation in the shape the health endpoint reports."""
        return {
            "size": self.size(),
            "maxSize": self._max_size,
            "utilization": self.utilization(),
        }
