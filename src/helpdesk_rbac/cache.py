"""
Explicit cache objects used by the loaders and resolvers.

TTLCache holds one value with a timestamp; SingleSlotCache holds one value
under one key. Both are last-write-wins and meant to be owned by a single
service instance, so tests can build fresh ones instead of resetting globals.
"""

import time
from typing import Callable, Generic, Hashable, Optional, TypeVar

T = TypeVar("T")


class TTLCache(Generic[T]):
    """A single value that expires ttl_seconds after it was stored."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._value: Optional[T] = None
        self._stored_at: Optional[float] = None

    def get(self) -> Optional[T]:
        """Return the cached value, or None when empty or expired."""
        if self._stored_at is None:
            return None
        if self._clock() - self._stored_at >= self.ttl_seconds:
            return None
        return self._value

    def set(self, value: T) -> None:
        self._value = value
        self._stored_at = self._clock()

    def invalidate(self) -> None:
        self._value = None
        self._stored_at = None

    @property
    def stored_at(self) -> Optional[float]:
        return self._stored_at


class SingleSlotCache(Generic[T]):
    """Remembers only the most recent key; any other key is a miss."""

    def __init__(self):
        self._key: Optional[Hashable] = None
        self._value: Optional[T] = None
        self._filled = False

    def get(self, key: Hashable) -> Optional[T]:
        if not self._filled or key != self._key:
            return None
        return self._value

    def set(self, key: Hashable, value: T) -> None:
        self._key = key
        self._value = value
        self._filled = True

    def invalidate(self) -> None:
        self._key = None
        self._value = None
        self._filled = False

    @property
    def key(self) -> Optional[Hashable]:
        return self._key
