"""TTL cache for catalog listings served over HTTP."""
from __future__ import annotations

from typing import Any, Generic, Optional, TypeVar

from cachetools import TTLCache

T = TypeVar("T")


class ListingCache(Generic[T]):
    """Caches listing results keyed by the filters of the query.

    Only the read endpoints use it; reservation writes read the catalog
    inside their own transaction.
    """

    def __init__(self, ttl: int, maxsize: int = 128) -> None:
        self._cache: TTLCache[str, T] = TTLCache(maxsize=maxsize, ttl=ttl)

    @staticmethod
    def key(**filters: Any) -> str:
        return "|".join(f"{name}={filters[name]}" for name in sorted(filters))

    def get(self, **filters: Any) -> Optional[T]:
        return self._cache.get(self.key(**filters))

    def set(self, value: T, **filters: Any) -> None:
        self._cache[self.key(**filters)] = value

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)
