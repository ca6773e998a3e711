"""Single-flight memoizing cache for registry lookups."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

from helm_updater.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class RegistryCache(Generic[T]):
    """Per-key memoizing cache where concurrent misses share one fetch.

    Successful results live until :meth:`clear`. Failures are not cached, so
    the next lookup after a failed fetch tries again; callers awaiting the
    same in-flight fetch all receive its exception.
    """

    def __init__(self, name: str):
        self.name = name
        self._entries: dict[str, T] = {}
        self._inflight: dict[str, asyncio.Task[T]] = {}
        self._generation = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> T | None:
        return self._entries.get(key)

    async def get_or_fetch(self, key: str, fetch: Callable[[], Awaitable[T]]) -> T:
        """Return the cached value for ``key``, fetching it at most once.

        Args:
            key: Cache key
            fetch: Zero-argument coroutine factory producing the value

        Returns:
            Cached or freshly fetched value

        Raises:
            Exception: Whatever ``fetch`` raised
        """
        if key in self._entries:
            logger.debug("registry_cache_hit", cache=self.name, key=key)
            return self._entries[key]

        task = self._inflight.get(key)
        if task is None:
            logger.debug("registry_cache_miss", cache=self.name, key=key)
            task = asyncio.ensure_future(self._load(key, fetch, self._generation))
            self._inflight[key] = task
        return await asyncio.shield(task)

    async def _load(self, key: str, fetch: Callable[[], Awaitable[T]], generation: int) -> T:
        try:
            value = await fetch()
            if generation == self._generation:
                self._entries[key] = value
            return value
        finally:
            if generation == self._generation:
                self._inflight.pop(key, None)

    def clear(self) -> None:
        """Drop every cached entry; in-flight fetches finish but are not stored."""
        self._entries.clear()
        self._inflight.clear()
        self._generation += 1
