"""TTL cache with cascading dependency invalidation.

This module caches successful operation results by key and tracks,
per key, which other keys were derived from it. Invalidating a key
removes it together with every key transitively derived from it.

One instance is built per process and injected into every repository.
It lives until process exit; there is no eviction beyond TTL expiry and
explicit invalidation.
"""

from __future__ import annotations

from dataclasses import dataclass
import time
from typing import Any, Callable, Iterable

from core.logging_config import get_logger
from core.results import Result

_LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """Cached successful result.

    Attributes:
        key: Cache key.
        result: Successful result returned by the producer.
        created_at: Clock reading when the entry was stored.
    """

    key: str
    result: Result[Any]
    created_at: float


class DependencyCache:
    """Key/value result cache with a reverse-dependency graph."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        """Create an empty cache.

        Args:
            clock: Monotonic clock in seconds, injectable for tests.
        """
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._dependents: dict[str, set[str]] = {}

    def get_or_fetch(
        self,
        key: str,
        producer: Callable[[], Result[Any]],
        ttl_seconds: float,
        depends_on: Iterable[str] = (),
    ) -> Result[Any]:
        """Return a fresh cached result or produce and cache a new one.

        Args:
            key: Cache key.
            producer: Callable returning the operation result on a miss.
            ttl_seconds: Maximum age of a reusable entry.
            depends_on: Keys whose invalidation must also invalidate ``key``.

        Returns:
            Cached or freshly produced result. Failed results are
            returned but never cached. Producer exceptions propagate.
        """
        now = self._clock()
        entry = self._entries.get(key)
        if entry is not None and now - entry.created_at < ttl_seconds:
            return entry.result
        result = producer()
        if not result.ok:
            self._entries.pop(key, None)
            return result
        self._entries[key] = CacheEntry(key=key, result=result, created_at=now)
        for dependency_key in depends_on:
            self._dependents.setdefault(dependency_key, set()).add(key)
        return result

    def invalidate(self, key: str) -> set[str]:
        """Remove a key and every key transitively registered as dependent.

        Args:
            key: Root key to invalidate.

        Returns:
            Keys visited by the traversal, including ``key``.
        """
        visited: set[str] = set()
        pending = [key]
        while pending:
            current_key = pending.pop()
            if current_key in visited:
                continue
            visited.add(current_key)
            self._entries.pop(current_key, None)
            pending.extend(self._dependents.get(current_key, ()))
        _LOGGER.debug("cache_invalidated", root_key=key, invalidated_count=len(visited))
        return visited

    def is_cached(self, key: str) -> bool:
        """Return whether an entry exists for key, fresh or not."""
        return key in self._entries

    def dependents_of(self, key: str) -> frozenset[str]:
        """Return keys directly registered as dependent on key."""
        return frozenset(self._dependents.get(key, ()))

    def clear(self) -> None:
        """Drop every entry and dependency edge."""
        self._entries.clear()
        self._dependents.clear()
