from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable

from idlecore._sync import ReadWriteLock


@dataclass(frozen=True)
class _Entry:
    value: Any
    expires_at: float


class ExpirationCache:
    """Thread-safe key/value store whose entries expire after a TTL.

    Expired entries are evicted when they are read, and swept out every
    *sweep_every* writes. Past *max_entries* the oldest writes are dropped
    first.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = 10_000,
        sweep_every: int = 256,
    ) -> None:
        if max_entries < 1:
            raise ValueError(f"max_entries must be positive, got {max_entries!r}")
        if sweep_every < 1:
            raise ValueError(f"sweep_every must be positive, got {sweep_every!r}")
        self._clock = clock
        self._data: dict[str, _Entry] = {}
        self._lock = ReadWriteLock()
        self.max_entries = max_entries
        self.sweep_every = sweep_every
        self._writes = 0

    def set(self, key: str, value: Any, ttl: float) -> None:
        """Store *value* under *key* for *ttl* seconds."""
        now = self._clock()
        entry = _Entry(value=value, expires_at=now + ttl)
        with self._lock.write():
            # Re-insert so dict order stays oldest-write first.
            self._data.pop(key, None)
            self._data[key] = entry
            self._writes += 1
            if self._writes % self.sweep_every == 0 or len(self._data) > self.max_entries:
                self._sweep(now)

    def _sweep(self, now: float) -> None:
        # Caller holds the write lock.
        expired = [k for k, e in self._data.items() if now >= e.expires_at]
        for k in expired:
            del self._data[k]
        while len(self._data) > self.max_entries:
            del self._data[next(iter(self._data))]

    def get(self, key: str) -> tuple[Any, bool]:
        """Return ``(value, True)`` while the entry is live, else ``(None, False)``."""
        with self._lock.read():
            entry = self._data.get(key)
        if entry is None:
            return None, False
        if self._clock() >= entry.expires_at:
            with self._lock.write():
                # Another writer may have refreshed the key meanwhile.
                if self._data.get(key) is entry:
                    del self._data[key]
            return None, False
        return entry.value, True

    def delete(self, key: str) -> None:
        with self._lock.write():
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock.write():
            self._data.clear()

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._data)

    def __contains__(self, key: str) -> bool:
        return self.get(key)[1]
