"""
In-memory TTL cache used for liveness batches and last-known-good holdover.

Expiry is evaluated lazily: an entry older than the TTL passed to ``get`` is
removed by the read that discovers it. Nothing sweeps in the background.

Instances are created by the entrypoint and handed to the resolver / prober,
so tests can supply a controllable clock.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    at: float
    value: T


class TTLCache:
    def __init__(
        self,
        *,
        name: str = "cache",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, CacheEntry[Any]] = {}

    # ------------------------------------------------------------------

    def get(self, key: str, ttl_seconds: float) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.at > ttl_seconds:
                del self._entries[key]
                return None
            return entry.value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(at=self._clock(), value=value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
