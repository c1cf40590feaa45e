#!/usr/bin/env python3
"""
Cache Store
In-memory key -> entry mapping with TTL bookkeeping

Implements:
- get(key) → CacheEntry | None
- set(key, value, ttl) → CacheEntry
- delete(key), delete_prefix(prefix), clear(), clear_expired()
- stats() → {size, entries: [{key, age, is_expired, expires_in}]}

Expiry is passive: entries are checked against the clock when read,
never removed by a timer.
"""

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .errors import validate_key

logger = logging.getLogger(__name__)

DEFAULT_TTL_SEC = 300.0


@dataclass
class CacheEntry:
    key: str
    value: Any
    cached_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at

    def age(self, now: float) -> float:
        return now - self.cached_at

    def expires_in(self, now: float) -> float:
        return max(0.0, self.expires_at - now)


class CacheStore:
    """
    Process-wide mapping from string key to CacheEntry.

    Design:
    - One entry per key, last write wins
    - Unbounded unless max_entries is given; then least recently used
      entries are evicted on write
    - Clock is injectable so tests never sleep
    """

    def __init__(
        self,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.time,
        on_evict: Optional[Callable[[CacheEntry], None]] = None,
    ):
        if max_entries is not None and max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")

        self.max_entries = max_entries
        self.clock = clock
        self.on_evict = on_evict
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def keys(self) -> List[str]:
        return list(self._entries)

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the entry for key, expired or not. Never mutates."""
        return self._entries.get(key)

    def set(self, key: str, value: Any, ttl: float = DEFAULT_TTL_SEC) -> CacheEntry:
        """Store value under key, replacing any existing entry."""
        validate_key(key)
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")

        now = self.clock()
        entry = CacheEntry(key=key, value=value, cached_at=now, expires_at=now + ttl)

        self._entries.pop(key, None)
        self._entries[key] = entry

        if self.max_entries is not None:
            while len(self._entries) > self.max_entries:
                _, victim = self._entries.popitem(last=False)
                logger.debug(f"Evicted {victim.key} (max_entries={self.max_entries})")
                if self.on_evict is not None:
                    self.on_evict(victim)

        logger.debug(f"Stored {key} (ttl={ttl}s)")
        return entry

    def touch(self, key: str) -> None:
        """Mark key as recently used. Only reorders; the entry is unchanged."""
        if self.max_entries is not None and key in self._entries:
            self._entries.move_to_end(key)

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def delete_prefix(self, prefix: str) -> int:
        """Remove every key that starts with prefix."""
        doomed = [key for key in self._entries if key.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def clear(self) -> int:
        cleared = len(self._entries)
        self._entries.clear()
        return cleared

    def clear_expired(self) -> int:
        """Remove all expired entries. Safe to call periodically."""
        now = self.clock()
        doomed = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def stats(self) -> Dict[str, Any]:
        """Read-only snapshot of the store."""
        now = self.clock()
        return {
            "size": len(self._entries),
            "entries": [
                {
                    "key": key,
                    "age": entry.age(now),
                    "is_expired": entry.is_expired(now),
                    "expires_in": entry.expires_in(now),
                }
                for key, entry in self._entries.items()
            ],
        }
