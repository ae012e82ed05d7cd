"""
In-process LRU cache

Bounded, partitioned key/value cache used as a read-through /
write-invalidate layer in front of the row store.

Features:
- One independent partition per entity type, each with its own capacity
- Least-recently-used eviction, purely capacity driven (no TTL)
- Per-partition locking; partitions never contend with each other
- Hit / miss / put / eviction counters per partition

Cache contents are never authoritative. Callers remove the key on every
mutation of the underlying row so a read never returns data known to be
stale; a miss is always resolved by reading the store.

Usage:
    quote = memory_cache.get(CacheType.QUOTE, quote_id)
    if quote is None:
        quote = store.get_quote(quote_id)
        memory_cache.put(CacheType.QUOTE, quote_id, quote)
"""
import threading
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Generic, Hashable, List, Optional, TypeVar

from core.config import settings

V = TypeVar("V")

DEFAULT_MAX_SIZE = 50


class CacheType(str, Enum):
    QUOTE = "quote"
    JOURNAL = "journal"
    EXERCISE = "exercise"
    ACHIEVEMENT = "achievement"
    SCHEDULE = "schedule"


@dataclass(frozen=True)
class CacheStats:
    """Point-in-time counters for one partition."""
    type: CacheType
    size: int
    max_size: int
    hits: int
    misses: int
    puts: int
    evictions: int

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0

    def to_dict(self) -> Dict:
        return {
            "type": self.type.value,
            "size": self.size,
            "max_size": self.max_size,
            "hits": self.hits,
            "misses": self.misses,
            "puts": self.puts,
            "evictions": self.evictions,
            "hit_rate": round(self.hit_rate, 4),
        }

    def __str__(self) -> str:
        return (
            f"{self.type.name}: size={self.size}/{self.max_size}, "
            f"hits={self.hits}, misses={self.misses}, "
            f"hitRate={self.hit_rate * 100:.2f}%, "
            f"puts={self.puts}, evictions={self.evictions}"
        )


class LRUPartition(Generic[V]):
    """
    A single bounded LRU segment.

    All operations hold the partition lock, so concurrent callers can never
    corrupt the recency order or lose entries.
    """

    def __init__(self, cache_type: CacheType, max_size: int = DEFAULT_MAX_SIZE):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.cache_type = cache_type
        self.max_size = max_size
        self._entries: "OrderedDict[Hashable, V]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._puts = 0
        self._evictions = 0

    def get(self, key: Hashable) -> Optional[V]:
        """Return the cached value and mark it most recently used, or None."""
        with self._lock:
            if key not in self._entries:
                self._misses += 1
                return None
            self._entries.move_to_end(key)
            self._hits += 1
            return self._entries[key]

    def put(self, key: Hashable, value: V) -> None:
        """Insert or replace; evicts the least recently used entry on overflow."""
        if value is None:
            raise ValueError("cannot cache None; a miss is represented by None")
        with self._lock:
            self._puts += 1
            self._entries[key] = value
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)
                self._evictions += 1

    def remove(self, key: Hashable) -> Optional[V]:
        with self._lock:
            return self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def contains(self, key: Hashable) -> bool:
        # Membership only: no promotion, no hit/miss accounting.
        with self._lock:
            return key in self._entries

    def keys(self) -> List[Hashable]:
        """Keys from least to most recently used."""
        with self._lock:
            return list(self._entries.keys())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                type=self.cache_type,
                size=len(self._entries),
                max_size=self.max_size,
                hits=self._hits,
                misses=self._misses,
                puts=self._puts,
                evictions=self._evictions,
            )


class MemoryCache:
    """Set of LRU partitions, one per CacheType."""

    def __init__(self, max_size: int = DEFAULT_MAX_SIZE):
        self._partitions: Dict[CacheType, LRUPartition] = {
            cache_type: LRUPartition(cache_type, max_size) for cache_type in CacheType
        }

    def partition(self, cache_type: CacheType) -> LRUPartition:
        return self._partitions[CacheType(cache_type)]

    def put(self, cache_type: CacheType, key: Hashable, value) -> None:
        self.partition(cache_type).put(key, value)

    def get(self, cache_type: CacheType, key: Hashable):
        return self.partition(cache_type).get(key)

    def remove(self, cache_type: CacheType, key: Hashable) -> None:
        self.partition(cache_type).remove(key)

    def clear(self, cache_type: CacheType) -> None:
        self.partition(cache_type).clear()

    def clear_all(self) -> None:
        for partition in self._partitions.values():
            partition.clear()

    def size(self, cache_type: CacheType) -> int:
        return len(self.partition(cache_type))

    def contains(self, cache_type: CacheType, key: Hashable) -> bool:
        return self.partition(cache_type).contains(key)

    def stats(self, cache_type: CacheType) -> CacheStats:
        return self.partition(cache_type).stats()

    def all_stats(self) -> List[CacheStats]:
        return [self._partitions[cache_type].stats() for cache_type in CacheType]


# Process-wide cache shared by the API and worker read paths
memory_cache = MemoryCache(max_size=settings.CACHE_PARTITION_SIZE)
