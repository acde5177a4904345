"""In-process idempotency cache with per-entry expiry."""

import copy
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

from infrastructure.idempotency.cache import IdempotencyCache
from infrastructure.logging import get_module_logger

logger = get_module_logger()


class InMemoryIdempotencyCache(IdempotencyCache):
    """Thread-safe dict-backed cache.

    Expired entries are dropped lazily on read and swept on write once the
    cache holds more than ``max_entries`` items.
    """

    def __init__(
        self,
        max_entries: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Dict[str, Any]]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            expires_at, response = entry
            if expires_at <= self._clock():
                del self._entries[key]
                self._misses += 1
                logger.debug("idempotency_cache_expired", key=key)
                return None
            self._hits += 1
            return copy.deepcopy(response)

    def set(self, key: str, response: Dict[str, Any], ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            return
        with self._lock:
            if len(self._entries) >= self.max_entries:
                self._sweep()
            self._entries[key] = (
                self._clock() + ttl_seconds,
                copy.deepcopy(response),
            )

    def _sweep(self) -> None:
        # Caller holds self._lock
        now = self._clock()
        expired = [k for k, (exp, _) in self._entries.items() if exp <= now]
        for key in expired:
            del self._entries[key]
        if len(self._entries) >= self.max_entries:
            # Still full: evict the entries closest to expiry
            overflow = len(self._entries) - self.max_entries + 1
            for key, _ in sorted(self._entries.items(), key=lambda kv: kv[1][0])[
                :overflow
            ]:
                del self._entries[key]
        if expired:
            logger.debug("idempotency_cache_swept", removed=len(expired))

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "backend": "memory",
                "entries": len(self._entries),
                "max_entries": self.max_entries,
                "hits": self._hits,
                "misses": self._misses,
            }
