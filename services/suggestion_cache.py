"""Bounded TTL cache injected into the KPI suggestion collaborator."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Callable, Generic, Optional, Tuple, TypeVar

from core.logging import get_logger

logger = get_logger(__name__)

V = TypeVar("V")


class TTLCache(Generic[V]):
    """LRU map whose entries expire ``ttl_seconds`` after they were stored.

    ``clock`` returns monotonic seconds and exists so tests can move time.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float,
        max_entries: int = 256,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._ttl = float(ttl_seconds)
        self._max_entries = int(max_entries)
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, V]]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str) -> Optional[V]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if self._clock() - stored_at >= self._ttl:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return value

    def set(self, key: str, value: V) -> None:
        with self._lock:
            self._entries[key] = (self._clock(), value)
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Suggestion cache full; evicted %s.", evicted)

    def evict(self, key: Optional[str] = None) -> int:
        """Drop ``key``, or every expired entry when ``key`` is None."""
        with self._lock:
            if key is not None:
                return 1 if self._entries.pop(key, None) is not None else 0
            now = self._clock()
            expired = [name for name, (stored_at, _) in self._entries.items() if now - stored_at >= self._ttl]
            for name in expired:
                del self._entries[name]
            return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


__all__ = ["TTLCache"]
