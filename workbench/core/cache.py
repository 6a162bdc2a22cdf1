"""Process-wide cached values with an explicit refresh lifecycle."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class CacheEntry(Generic[T]):
    value: T
    fetched_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return now - self.fetched_at <= self.ttl


class TtlCache(Generic[T]):
    """Holds one value and reloads it once its TTL has elapsed.

    A failed reload keeps serving the previous entry when there is one.
    """

    def __init__(
        self,
        loader: Callable[[], Awaitable[T]],
        *,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        name: str = "cache",
    ) -> None:
        self._loader = loader
        self._ttl = ttl_seconds
        self._clock = clock
        self._name = name
        self._entry: CacheEntry[T] | None = None
        self._lock = asyncio.Lock()

    @property
    def entry(self) -> CacheEntry[T] | None:
        return self._entry

    def invalidate(self) -> None:
        self._entry = None

    async def get_or_refresh(self) -> T:
        entry = self._entry
        if entry is not None and entry.is_fresh(self._clock()):
            return entry.value

        async with self._lock:
            now = self._clock()
            entry = self._entry
            if entry is not None and entry.is_fresh(now):
                return entry.value
            try:
                value = await self._loader()
            except Exception as exc:
                if entry is None:
                    raise
                logger.warning("%s refresh failed, serving stale value: %s", self._name, exc)
                return entry.value
            self._entry = CacheEntry(value=value, fetched_at=now, ttl=self._ttl)
            return value
