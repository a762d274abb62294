"""
Bounded in-memory cache partitioned into namespaces.
- Each namespace has its own TTL, entry limit and memory budget.
- A global memory ceiling protects the process as a whole.
- Expired entries are dropped lazily on read and by a periodic sweep.
- Over-budget namespaces evict their least-used, oldest entries first.

Sizes are estimated from the JSON serialisation of a value. It is an
approximation; budgets and eviction order only rely on relative sizes.
"""
import asyncio
import dataclasses
import json
import logging
import math
import time
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any, Callable, Hashable, Optional

from mixtape_player.config.settings import settings

logger = logging.getLogger(__name__)

_UNSERIALISABLE_SIZE = int(0.1 * 1024 * 1024)
_EVICT_FRACTION = 0.25


@dataclass(frozen=True)
class NamespaceConfig:
    ttl: float  # seconds
    max_entries: int
    max_memory: int  # bytes


@dataclass
class CacheEntry:
    data: Any
    inserted_at: float
    size: int
    hits: int = 0


@dataclass
class _Namespace:
    config: NamespaceConfig
    entries: dict[Hashable, CacheEntry] = field(default_factory=dict)
    memory: int = 0


def _jsonable(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, (set, frozenset)):
        return list(value)
    return str(value)


def estimate_size(value: Any) -> int:
    """Approximate size in bytes of the JSON form of `value`."""
    try:
        return len(json.dumps(value, default=_jsonable).encode("utf-8"))
    except (TypeError, ValueError):
        return _UNSERIALISABLE_SIZE


class CacheManager:
    def __init__(
        self,
        max_total_memory: int = settings.cache_global_max_memory_bytes,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._namespaces: dict[str, _Namespace] = {}
        self._max_total_memory = max_total_memory
        self._total_memory = 0
        self._clock = clock
        self._sweeper: Optional[asyncio.Task] = None

    @property
    def total_memory(self) -> int:
        return self._total_memory

    def create_namespace(self, name: str, config: NamespaceConfig) -> bool:
        """Register a namespace. Returns False if it already exists (left untouched)."""
        if name in self._namespaces:
            return False
        self._namespaces[name] = _Namespace(config=config)
        return True

    def has_namespace(self, name: str) -> bool:
        return name in self._namespaces

    def namespace(self, name: str) -> "NamespaceView":
        return NamespaceView(self, name)

    # ── Core operations ──────────────────────────────────────────────────────

    def set(self, namespace: str, key: Hashable, value: Any) -> bool:
        ns = self._namespaces.get(namespace)
        if ns is None:
            return False

        size = estimate_size(value)
        if size > ns.config.max_memory * 0.5:
            logger.debug(
                "Rejected oversized cache value",
                extra={"namespace": namespace, "size": size},
            )
            return False

        existing = ns.entries.pop(key, None)
        if existing is not None:
            self._forget(ns, existing)

        ns.entries[key] = CacheEntry(data=value, inserted_at=self._clock(), size=size)
        ns.memory += size
        self._total_memory += size

        if (
            len(ns.entries) > ns.config.max_entries
            or ns.memory > ns.config.max_memory
            or self._total_memory > self._max_total_memory
        ):
            self.cleanup_namespace(namespace)
        return True

    def get(self, namespace: str, key: Hashable) -> Any:
        ns = self._namespaces.get(namespace)
        if ns is None:
            return None
        entry = ns.entries.get(key)
        if entry is None:
            return None

        if self._expired(entry, ns.config):
            del ns.entries[key]
            self._forget(ns, entry)
            return None

        entry.hits += 1
        return entry.data

    def delete(self, namespace: str, key: Hashable) -> bool:
        ns = self._namespaces.get(namespace)
        if ns is None:
            return False
        entry = ns.entries.pop(key, None)
        if entry is None:
            return False
        self._forget(ns, entry)
        return True

    def clear(self, namespace: Optional[str] = None) -> None:
        if namespace is None:
            for ns in self._namespaces.values():
                ns.entries.clear()
                ns.memory = 0
            self._total_memory = 0
            return

        ns = self._namespaces.get(namespace)
        if ns is not None:
            self._total_memory -= ns.memory
            ns.entries.clear()
            ns.memory = 0

    # ── Eviction ─────────────────────────────────────────────────────────────

    def evict_lru(self, namespace: str) -> int:
        """Drop the lowest-ranked quarter (at least one) of a namespace.

        Rank is (hits, inserted_at) ascending: least used first, then oldest.
        """
        ns = self._namespaces.get(namespace)
        if ns is None or not ns.entries:
            return 0

        ranked = sorted(ns.entries.items(), key=lambda kv: (kv[1].hits, kv[1].inserted_at))
        to_remove = max(1, math.ceil(len(ranked) * _EVICT_FRACTION))
        for key, entry in ranked[:to_remove]:
            del ns.entries[key]
            self._forget(ns, entry)

        logger.debug("Evicted cache entries", extra={"namespace": namespace, "count": to_remove})
        return to_remove

    def cleanup_namespace(self, namespace: str) -> None:
        ns = self._namespaces.get(namespace)
        if ns is None:
            return

        now = self._clock()
        for key, entry in list(ns.entries.items()):
            if now - entry.inserted_at >= ns.config.ttl:
                del ns.entries[key]
                self._forget(ns, entry)

        if len(ns.entries) > ns.config.max_entries:
            self.evict_lru(namespace)

        while ns.entries and ns.memory > ns.config.max_memory:
            self.evict_lru(namespace)

    def sweep(self) -> None:
        """Expire and trim every namespace, then relieve global memory pressure."""
        for name in list(self._namespaces):
            self.cleanup_namespace(name)

        if self._total_memory > self._max_total_memory:
            largest = sorted(
                self._namespaces.items(), key=lambda kv: kv[1].memory, reverse=True
            )[:2]
            for name, _ in largest:
                self.evict_lru(name)
            logger.info(
                "Cache over global memory ceiling",
                extra={"total_memory": self._total_memory, "evicted_from": [n for n, _ in largest]},
            )

    # ── Background sweep ─────────────────────────────────────────────────────

    def start_sweeper(self, interval: float = settings.CACHE_SWEEP_INTERVAL_SECONDS) -> None:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever(interval))

    async def stop_sweeper(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            with suppress(asyncio.CancelledError):
                await self._sweeper
            self._sweeper = None

    async def _sweep_forever(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                self.sweep()
            except Exception:
                logger.exception("Cache sweep failed")

    # ── Introspection ────────────────────────────────────────────────────────

    def get_stats(self) -> dict:
        namespaces = {}
        for name, ns in self._namespaces.items():
            count = len(ns.entries)
            hits = sum(e.hits for e in ns.entries.values())
            namespaces[name] = {
                "size": count,
                "memory": ns.memory,
                "hit_rate": round(hits / count, 2) if count else 0,
            }
        return {"total_memory": self._total_memory, "namespaces": namespaces}

    def _expired(self, entry: CacheEntry, config: NamespaceConfig) -> bool:
        return self._clock() - entry.inserted_at >= config.ttl

    def _forget(self, ns: _Namespace, entry: CacheEntry) -> None:
        ns.memory -= entry.size
        self._total_memory -= entry.size


class NamespaceView:
    """A cache namespace bound to a name, e.g. `cache.namespace("products")`."""

    def __init__(self, manager: CacheManager, name: str):
        self._manager = manager
        self.name = name

    def get(self, key: Hashable) -> Any:
        return self._manager.get(self.name, key)

    def set(self, key: Hashable, value: Any) -> bool:
        return self._manager.set(self.name, key, value)

    def delete(self, key: Hashable) -> bool:
        return self._manager.delete(self.name, key)

    def clear(self) -> None:
        self._manager.clear(self.name)


def default_namespaces() -> dict[str, NamespaceConfig]:
    s = settings
    return {
        "products": NamespaceConfig(
            s.CACHE_PRODUCTS_TTL_SECONDS, s.CACHE_PRODUCTS_MAX_ENTRIES, s.mb(s.CACHE_PRODUCTS_MAX_MEMORY_MB)
        ),
        "relatedProducts": NamespaceConfig(
            s.CACHE_RELATED_TTL_SECONDS, s.CACHE_RELATED_MAX_ENTRIES, s.mb(s.CACHE_RELATED_MAX_MEMORY_MB)
        ),
        "images": NamespaceConfig(
            s.CACHE_IMAGES_TTL_SECONDS, s.CACHE_IMAGES_MAX_ENTRIES, s.mb(s.CACHE_IMAGES_MAX_MEMORY_MB)
        ),
        "promises": NamespaceConfig(
            s.CACHE_PROMISES_TTL_SECONDS, s.CACHE_PROMISES_MAX_ENTRIES, s.mb(s.CACHE_PROMISES_MAX_MEMORY_MB)
        ),
    }


def build_default_cache(clock: Callable[[], float] = time.monotonic) -> CacheManager:
    cache = CacheManager(clock=clock)
    for name, config in default_namespaces().items():
        cache.create_namespace(name, config)
    return cache
