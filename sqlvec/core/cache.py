"""Process-wide cache of compiled expressions.

Components:
- CacheKey: Immutable, content-addressed cache key
- CacheStats: Hit/miss counters
- ExpressionCache: Compile-once cache with lock-free reads
"""

import logging
import threading
from collections.abc import Callable
from typing import Any, Final, Optional

from mypy_extensions import mypyc_attr
from typing_extensions import TypeVar

from sqlvec.utils.logging import get_logger, log_event

__all__ = (
    "CacheKey",
    "CacheStats",
    "ExpressionCache",
    "clear_all_caches",
    "get_cache_statistics",
    "get_expression_cache",
)

logger = get_logger("core.cache")

CacheValueT = TypeVar("CacheValueT")

CACHE_STATS_SLOTS: Final = ("compilations", "hits", "misses")


@mypyc_attr(allow_interpreted_subclasses=False)
class CacheKey:
    """Immutable cache key.

    Args:
        key_data: Tuple of hashable values that uniquely identify the cached item
    """

    __slots__ = ("_hash", "_key_data")

    def __init__(self, key_data: "tuple[Any, ...]") -> None:
        self._key_data = key_data
        self._hash = hash(key_data)

    @property
    def key_data(self) -> "tuple[Any, ...]":
        return self._key_data

    def __hash__(self) -> int:
        return self._hash

    def __eq__(self, other: object) -> bool:
        if type(other) is not CacheKey:
            return False
        if self._hash != other._hash:
            return False
        return self._key_data == other._key_data

    def __repr__(self) -> str:
        return f"CacheKey({self._key_data!r})"


@mypyc_attr(allow_interpreted_subclasses=False)
class CacheStats:
    """Cache statistics tracking.

    Hits are counted on the lock-free read path, so under heavy concurrency
    the hit count is approximate. Misses and compilations are exact.
    """

    __slots__ = CACHE_STATS_SLOTS

    def __init__(self) -> None:
        self.hits = 0
        self.misses = 0
        self.compilations = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate as percentage."""
        total = self.hits + self.misses
        return (self.hits / total * 100) if total > 0 else 0.0

    def reset(self) -> None:
        self.hits = 0
        self.misses = 0
        self.compilations = 0

    def __repr__(self) -> str:
        return (
            f"CacheStats(hit_rate={self.hit_rate:.1f}%, "
            f"hits={self.hits}, misses={self.misses}, compilations={self.compilations})"
        )


@mypyc_attr(allow_interpreted_subclasses=False)
class ExpressionCache:
    """Compile-once cache for embedded expressions.

    Lookups read the underlying dict without locking. On a miss the lock is
    taken and the key checked again, so each distinct key is compiled at most
    once even when many threads miss together. A failing compilation stores
    nothing and the error reaches the caller.
    """

    __slots__ = ("_entries", "_lock", "_stats")

    def __init__(self) -> None:
        self._entries: dict[CacheKey, Any] = {}
        self._lock = threading.Lock()
        self._stats = CacheStats()

    def get(self, key: CacheKey) -> Optional[Any]:
        return self._entries.get(key)

    def get_or_compile(self, key: CacheKey, compile_fn: "Callable[[], CacheValueT]") -> "CacheValueT":
        """Return the cached value for ``key``, compiling it on first use.

        Args:
            key: Content-addressed cache key
            compile_fn: Zero-argument callable producing the value

        Returns:
            The cached or freshly compiled value
        """
        value = self._entries.get(key)
        if value is not None:
            self._stats.hits += 1
            return value  # type: ignore[no-any-return]

        with self._lock:
            value = self._entries.get(key)
            if value is not None:
                self._stats.hits += 1
                return value  # type: ignore[no-any-return]
            self._stats.misses += 1
            value = compile_fn()
            self._entries[key] = value
            self._stats.compilations += 1
            log_event(logger, logging.DEBUG, "expression.compiled", key=key.key_data[-1], cached=len(self._entries))
            return value

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._stats.reset()

    def get_stats(self) -> CacheStats:
        return self._stats

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries


_expression_cache: Optional[ExpressionCache] = None
_cache_lock = threading.Lock()


def get_expression_cache() -> ExpressionCache:
    """Get the process-wide expression cache instance.

    Returns:
        Singleton expression cache instance
    """
    global _expression_cache
    if _expression_cache is None:
        with _cache_lock:
            if _expression_cache is None:
                _expression_cache = ExpressionCache()
    return _expression_cache


def clear_all_caches() -> None:
    """Clear all cache instances."""
    if _expression_cache is not None:
        _expression_cache.clear()


def get_cache_statistics() -> "dict[str, CacheStats]":
    """Get statistics from all cache instances."""
    stats: dict[str, CacheStats] = {}
    if _expression_cache is not None:
        stats["expression"] = _expression_cache.get_stats()
    return stats
