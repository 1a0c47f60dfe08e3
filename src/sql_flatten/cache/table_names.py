"""Time-expiring cache of valid table names with single-flight refresh."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable


logger = logging.getLogger(__name__)


class SchemaFetchError(Exception):
    """Raised when the table name catalog cannot be fetched."""
    pass


@dataclass
class TableNameCache:
    """
    Shared set of real table names, refreshed from the database on expiry.

    - Lock-free reads while the cached set is fresh
    - Single-flight refresh: callers racing past an expiry queue on one
      lock and re-check freshness, so only one fetch runs per window
    - Atomic swap: readers see the old set until the new one is built
    - A failed fetch leaves the current set untouched

    Names are stored uppercased; lookups are case-insensitive.
    """
    # Async callable returning every schema-qualified base table name
    loader: Callable[[], Awaitable[Iterable[str]]]

    enabled: bool = True
    expiration_minutes: float = 60.0

    # Wall clock in seconds (injectable for tests)
    clock: Callable[[], float] = time.time

    # Internal state
    _names: frozenset[str] | None = field(default=None, init=False)
    _last_refreshed: float | None = field(default=None, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)

    # Stats
    _hits: int = field(default=0, init=False)
    _fetches: int = field(default=0, init=False)
    _failures: int = field(default=0, init=False)

    @property
    def last_refreshed(self) -> float | None:
        return self._last_refreshed

    def _age_minutes(self) -> float | None:
        if self._names is None or self._last_refreshed is None:
            return None
        return (self.clock() - self._last_refreshed) / 60.0

    def _is_fresh(self) -> bool:
        age = self._age_minutes()
        return age is not None and age < self.expiration_minutes

    async def get_names(self) -> frozenset[str]:
        """Return the current table names, fetching when missing or expired."""
        if not self.enabled:
            logger.debug("Table cache disabled, fetching fresh table names")
            return await self._fetch()

        if self._is_fresh():
            self._hits += 1
            logger.debug(f"Returning cached table names (age: {self._age_minutes():.2f} minutes)")
            return self._names

        age = self._age_minutes()
        if age is not None:
            logger.info(f"Table name cache expired (age: {age:.2f} minutes), refreshing")

        return await self.refresh()

    async def refresh(self, force: bool = False) -> frozenset[str]:
        """
        Refresh the cached names.

        Without ``force``, a set refreshed by another caller while this one
        waited for the lock is returned as-is.
        """
        async with self._lock:
            if not force and self._is_fresh():
                logger.debug("Cache was refreshed by another caller, using existing cache")
                return self._names

            logger.info("Refreshing table name cache")
            names = await self._fetch()

            self._names = names
            self._last_refreshed = self.clock()

            logger.info(f"Table name cache refreshed with {len(names)} tables")
            return names

    async def clear(self) -> None:
        """Discard the cached names so the next read refetches."""
        async with self._lock:
            self._names = None
            self._last_refreshed = None
            logger.info("Table name cache cleared")

    async def contains(self, name: str) -> bool:
        """Case-insensitive membership test against the current names."""
        names = await self.get_names()
        return name.upper() in names

    async def _fetch(self) -> frozenset[str]:
        self._fetches += 1
        try:
            raw = await self.loader()
        except Exception as e:
            self._failures += 1
            logger.error(f"Error fetching table names from database schema: {e}")
            raise SchemaFetchError(f"Could not fetch table names: {e}") from e

        return frozenset(name.upper() for name in raw)

    @property
    def size(self) -> int:
        """Number of cached names (0 when empty)."""
        return len(self._names) if self._names is not None else 0

    @property
    def stats(self) -> dict:
        """Cache statistics."""
        age = self._age_minutes()
        return {
            "enabled": self.enabled,
            "expiration_minutes": self.expiration_minutes,
            "size": self.size,
            "last_refreshed": self._last_refreshed,
            "age_minutes": round(age, 2) if age is not None else None,
            "fresh": self._is_fresh(),
            "hits": self._hits,
            "fetches": self._fetches,
            "failures": self._failures,
        }
