"""
Expiring single-flight cache.

Holds one lazily loaded value (an access token, a lookup table) with an
expiry timestamp. Concurrent readers of a stale cache trigger at most
one load; everyone else waits for and shares its result.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

from gsplay_catalog.logger import get_logger

T = TypeVar("T")

# A loader returns the fresh value and its lifetime in seconds
Loader = Callable[[], Awaitable[tuple[T, float]]]


class ExpiringCache(Generic[T]):
    """
    Owned cache for a single value with a defined refresh interval.

    Args:
        name: Label used in log events
        loader: Coroutine function producing (value, lifetime_seconds)
        refresh_buffer_seconds: Treat the value as stale this long before expiry
        clock: Monotonic time source

    Example:
        >>> cache = ExpiringCache("token", fetch_token, refresh_buffer_seconds=300)
        >>> token = await cache.get()
    """

    def __init__(
        self,
        name: str,
        loader: Loader[T],
        *,
        refresh_buffer_seconds: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self._loader = loader
        self._buffer = refresh_buffer_seconds
        self._clock = clock
        self._value: T | None = None
        self._expires_at: float | None = None
        self._lock = asyncio.Lock()
        self._loads = 0
        self._logger = get_logger(__name__, component="cache", cache=name)

    @property
    def is_fresh(self) -> bool:
        if self._expires_at is None:
            return False
        return self._clock() < self._expires_at - self._buffer

    @property
    def expires_at(self) -> float | None:
        return self._expires_at

    @property
    def load_count(self) -> int:
        """Number of loads performed so far."""
        return self._loads

    async def get(self) -> T:
        """Return the cached value, loading it first if missing or stale."""
        if self.is_fresh:
            return self._value  # type: ignore[return-value]

        async with self._lock:
            # Another caller may have loaded while we waited
            if self.is_fresh:
                return self._value  # type: ignore[return-value]
            return await self._load()

    async def refresh(self) -> T:
        """Load a new value unconditionally."""
        async with self._lock:
            return await self._load()

    def invalidate(self) -> None:
        """Drop the cached value; the next get() reloads."""
        self._value = None
        self._expires_at = None

    async def _load(self) -> T:
        value, lifetime = await self._loader()
        self._value = value
        self._expires_at = self._clock() + max(lifetime, 0.0)
        self._loads += 1
        self._logger.debug("Cache loaded", lifetime_seconds=lifetime)
        return value
