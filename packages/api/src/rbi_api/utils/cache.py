"""In-memory TTL cache for geography lookups."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Any, TypeVar

from rbi_shared.config import settings

T = TypeVar("T")


class TTLCache:
    """
    Dict-based cache with per-key expiry.

    The facade drops the whole cache after a reconciliation it ran itself.
    Runs from the CLI or another process are only picked up once entries
    expire, so the default TTL is kept short.
    """

    def __init__(
        self,
        default_ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()
        self.default_ttl = default_ttl
        self.clock = clock

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self.clock() > expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        expires_at = self.clock() + (ttl if ttl is not None else self.default_ttl)
        with self._lock:
            self._entries[key] = (value, expires_at)

    def get_or_load(self, key: str, loader: Callable[[], T]) -> T:
        """Cached value for *key*, calling *loader* on a miss. Loader errors are not cached."""
        cached = self.get(key)
        if cached is not None:
            return cached
        value = loader()
        self.set(key, value)
        return value

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


geography_cache = TTLCache(default_ttl=settings.geography_cache_ttl)
