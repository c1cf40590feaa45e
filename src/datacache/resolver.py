#!/usr/bin/env python3
"""
Data Cache
Fetch-and-cache with stale-while-revalidate

Implements:
- resolve(key, producer, ttl, stale_while_revalidate, force_refresh) → Resolution
- refresh(key, producer) → Resolution (forced, always awaits the producer)
- prefetch(key, producer) → value
- invalidate(key), invalidate_prefix(prefix), clear(), clear_expired()
- stats() → store snapshot + {hits, misses, stale_serves, writes, failures}

Producer failures are never retried or logged here. They come back to the
caller either inside a stale Resolution or as a raised ProducerFailure.
"""

import asyncio
import functools
import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Union

from .config import CacheConfig
from .errors import ProducerFailure, validate_key
from .key_generator import CacheKeyGenerator
from .observability import CacheEventRecord, EventSink
from .store import DEFAULT_TTL_SEC, CacheEntry, CacheStore

logger = logging.getLogger(__name__)

Producer = Callable[[], Union[Awaitable[Any], Any]]


@dataclass
class Resolution:
    """
    The {value, is_stale, error} triple a resolve call settles on.

    A Resolution with an error always carries the last cached value; when
    nothing was cached the failure is raised instead.
    """

    key: str
    value: Any
    is_stale: bool = False
    error: Optional[ProducerFailure] = None
    cached_at: Optional[float] = None
    from_cache: bool = True
    revalidation: Optional["asyncio.Task[Resolution]"] = field(default=None, repr=False, compare=False)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def is_revalidating(self) -> bool:
        return self.revalidation is not None and not self.revalidation.done()

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


UpdateCallback = Callable[[Resolution], None]


class DataCache:
    """
    Keyed TTL cache in front of caller-supplied async producers.

    Design principles:
    - Fresh hit = no producer call, no store write
    - Expired + stale_while_revalidate = old value now, fresh value later
    - One store write per successful producer, in completion order
    - No dedup of concurrent producers unless single_flight is enabled
    """

    def __init__(
        self,
        store: Optional[CacheStore] = None,
        *,
        default_ttl: float = DEFAULT_TTL_SEC,
        stale_while_revalidate: bool = True,
        single_flight: bool = False,
        max_entries: Optional[int] = None,
        namespace: str = "",
        clock: Callable[[], float] = time.time,
        event_sink: Optional[EventSink] = None,
    ):
        if default_ttl <= 0:
            raise ValueError(f"default_ttl must be positive, got {default_ttl}")

        # a caller-supplied store is used as is; its evictions are not counted here
        if store is None:
            store = CacheStore(max_entries=max_entries, clock=clock, on_evict=self._record_eviction)

        self.store = store
        self.keys = CacheKeyGenerator(namespace)
        self.default_ttl = default_ttl
        self.stale_while_revalidate = stale_while_revalidate
        self.single_flight = single_flight
        self._event_sink = event_sink

        self._inflight: Dict[str, "asyncio.Task[CacheEntry]"] = {}
        self._revalidations: Set["asyncio.Task[Resolution]"] = set()

        self._stats = {
            "hits": 0,
            "misses": 0,
            "stale_serves": 0,
            "writes": 0,
            "failures": 0,
            "shared_flights": 0,
            "evictions": 0,
            "start_time": time.time(),
        }

        logger.info(
            f"DataCache initialized (ttl={default_ttl}s, swr={stale_while_revalidate}, "
            f"single_flight={single_flight}, max_entries={self.store.max_entries})"
        )

    @classmethod
    def from_config(cls, config: CacheConfig, **kwargs: Any) -> "DataCache":
        return cls(
            default_ttl=config.default_ttl_sec,
            stale_while_revalidate=config.stale_while_revalidate,
            single_flight=config.single_flight,
            max_entries=config.max_entries,
            namespace=config.namespace,
            **kwargs,
        )

    def _emit(self, event: str, key: str, **fields: Any) -> None:
        if self._event_sink is None:
            return
        record = CacheEventRecord(event=event, key=key, at=self.store.clock(), **fields)
        self._event_sink(record.to_dict())

    def _record_eviction(self, entry: CacheEntry) -> None:
        self._stats["evictions"] += 1
        self._emit("evict", entry.key)

    def _ttl(self, ttl: Optional[float]) -> float:
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")
        return ttl

    async def resolve(
        self,
        key: str,
        producer: Producer,
        *,
        ttl: Optional[float] = None,
        stale_while_revalidate: Optional[bool] = None,
        force_refresh: bool = False,
        on_update: Optional[UpdateCallback] = None,
    ) -> Resolution:
        """
        Resolve a value for key.

        Args:
            key: Non-empty key encoding every parameter of the result
            producer: Zero-argument callable returning the value (or an awaitable)
            ttl: Seconds the fetched value stays fresh (default: cache default)
            stale_while_revalidate: Serve an expired value while refreshing
            force_refresh: Treat a fresh entry as expired
            on_update: Called with the final Resolution of a background refresh

        Returns:
            Resolution. When a stale value is served, ``revalidation`` is the
            task that settles on the refreshed Resolution. If the key is
            invalidated while that refresh fails, the task raises
            ProducerFailure and on_update is not called.

        Raises:
            InvalidKey: key is empty or not a string
            ProducerFailure: producer failed and nothing was cached
        """
        validate_key(key)
        ttl = self._ttl(ttl)
        swr = self.stale_while_revalidate if stale_while_revalidate is None else stale_while_revalidate

        cached = self.store.get(key)
        now = self.store.clock()

        if cached is not None and not force_refresh and not cached.is_expired(now):
            self.store.touch(key)
            self._stats["hits"] += 1
            self._emit("hit", key)
            logger.debug(f"Cache hit for {key} (age={cached.age(now):.1f}s)")
            return Resolution(key=key, value=cached.value, cached_at=cached.cached_at)

        if cached is not None and swr:
            self._stats["stale_serves"] += 1
            self._emit("stale", key)
            logger.debug(f"Serving stale {key} while revalidating")

            task = asyncio.ensure_future(self._revalidate(key, producer, ttl, cached, on_update))
            self._revalidations.add(task)
            task.add_done_callback(self._revalidation_done)
            return Resolution(
                key=key,
                value=cached.value,
                is_stale=True,
                cached_at=cached.cached_at,
                revalidation=task,
            )

        self._stats["misses"] += 1
        self._emit("miss", key)
        logger.debug(f"Cache miss for {key} (cached={cached is not None}, forced={force_refresh})")

        try:
            entry = await self._fetch(key, producer, ttl)
        except ProducerFailure as failure:
            # an entry invalidated while the producer ran is gone for good
            if cached is None or self.store.get(key) is not cached:
                raise
            return Resolution(
                key=key,
                value=cached.value,
                is_stale=True,
                error=failure,
                cached_at=cached.cached_at,
            )

        return Resolution(key=key, value=entry.value, cached_at=entry.cached_at, from_cache=False)

    async def refresh(self, key: str, producer: Producer, ttl: Optional[float] = None) -> Resolution:
        """Force a fetch and wait for it, even if the entry is fresh."""
        return await self.resolve(
            key,
            producer,
            ttl=ttl,
            stale_while_revalidate=False,
            force_refresh=True,
        )

    async def prefetch(self, key: str, producer: Producer, ttl: Optional[float] = None) -> Any:
        """Run producer unconditionally and store its value."""
        validate_key(key)
        entry = await self._fetch(key, producer, self._ttl(ttl))
        return entry.value

    async def _revalidate(
        self,
        key: str,
        producer: Producer,
        ttl: float,
        stale: CacheEntry,
        on_update: Optional[UpdateCallback],
    ) -> Resolution:
        try:
            entry = await self._fetch(key, producer, ttl)
        except ProducerFailure as failure:
            if self.store.get(key) is not stale:
                # stale value was invalidated meanwhile: no data to fall back on
                raise
            result = Resolution(
                key=key,
                value=stale.value,
                is_stale=True,
                error=failure,
                cached_at=stale.cached_at,
            )
        else:
            result = Resolution(key=key, value=entry.value, cached_at=entry.cached_at, from_cache=False)

        if on_update is not None:
            on_update(result)
        return result

    async def _fetch(self, key: str, producer: Producer, ttl: float) -> CacheEntry:
        if not self.single_flight:
            return await self._produce(key, producer, ttl)

        task = self._inflight.get(key)
        if task is None or task.done():
            task = asyncio.ensure_future(self._produce(key, producer, ttl))
            self._inflight[key] = task
            task.add_done_callback(functools.partial(self._forget_flight, key))
        else:
            self._stats["shared_flights"] += 1
            logger.debug(f"Joining in-flight fetch for {key}")

        # a cancelled waiter must not cancel the fetch other waiters share
        return await asyncio.shield(task)

    def _forget_flight(self, key: str, task: "asyncio.Task[CacheEntry]") -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            # mark any failure as retrieved; waiters already saw it
            task.exception()

    async def _produce(self, key: str, producer: Producer, ttl: float) -> CacheEntry:
        try:
            value = producer()
            if inspect.isawaitable(value):
                value = await value
        except Exception as exc:
            self._stats["failures"] += 1
            self._emit("failure", key, error=repr(exc))
            raise ProducerFailure(key, exc) from exc

        entry = self.store.set(key, value, ttl)
        self._stats["writes"] += 1
        self._emit("write", key, ttl_sec=ttl)
        return entry

    def invalidate(self, key: str) -> bool:
        """
        Drop the entry for key.

        A producer already running for key is not cancelled; when it
        completes it writes the key again.
        """
        validate_key(key)
        removed = self.store.delete(key)
        if removed:
            self._emit("invalidate", key)
            logger.debug(f"Invalidated {key}")
        return removed

    def invalidate_prefix(self, prefix: str) -> int:
        validate_key(prefix)
        cleared = self.store.delete_prefix(prefix)
        if cleared > 0:
            self._emit("invalidate", prefix, count=cleared)
            logger.info(f"Invalidated {cleared} cache entries with prefix {prefix}")
        return cleared

    def clear(self) -> int:
        cleared = self.store.clear()
        self._emit("clear", "*", count=cleared)
        logger.info(f"Cleared {cleared} cache entries")
        return cleared

    def clear_expired(self) -> int:
        cleared = self.store.clear_expired()
        if cleared > 0:
            self._emit("clear", "*", count=cleared)
            logger.info(f"Cleared {cleared} expired cache entries")
        return cleared

    @property
    def pending_revalidations(self) -> int:
        return len(self._revalidations)

    def _revalidation_done(self, task: "asyncio.Task[Resolution]") -> None:
        self._revalidations.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None and not isinstance(error, ProducerFailure):
            # on_update raised; the ProducerFailure case belongs to whoever awaits the task
            task.get_loop().call_exception_handler(
                {"message": "cache revalidation callback failed", "exception": error, "task": task}
            )

    async def wait_for_revalidations(self) -> None:
        """Wait until every background revalidation has settled. Outcomes stay on the tasks."""
        while self._revalidations:
            await asyncio.wait(list(self._revalidations))

    def stats(self) -> Dict[str, Any]:
        """Store snapshot plus hit/miss counters."""
        served = self._stats["hits"] + self._stats["misses"] + self._stats["stale_serves"]
        hit_rate = (self._stats["hits"] / served * 100) if served > 0 else 0.0

        snapshot = self.store.stats()
        snapshot.update(
            {
                "hits": self._stats["hits"],
                "misses": self._stats["misses"],
                "stale_serves": self._stats["stale_serves"],
                "hit_rate_percent": round(hit_rate, 1),
                "total_requests": served,
                "writes": self._stats["writes"],
                "failures": self._stats["failures"],
                "shared_flights": self._stats["shared_flights"],
                "evictions": self._stats["evictions"],
                "uptime_seconds": int(time.time() - self._stats["start_time"]),
            }
        )
        return snapshot

    def print_report(self) -> None:
        """Print cache statistics report."""
        stats = self.stats()
        expired = sum(1 for entry in stats["entries"] if entry["is_expired"])

        print("\n" + "=" * 60)
        print("DATA CACHE REPORT")
        print("=" * 60)
        print(f"Hit Rate: {stats['hit_rate_percent']}% ({stats['hits']}/{stats['total_requests']})")
        print(f"Stale Serves: {stats['stale_serves']} | Misses: {stats['misses']}")
        print(f"Cache Size: {stats['size']} entries ({expired} expired)")
        print(f"Writes: {stats['writes']} | Failures: {stats['failures']} | Evictions: {stats['evictions']}")
        print(f"Uptime: {stats['uptime_seconds']}s")
        print("=" * 60 + "\n")
