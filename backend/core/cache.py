"""
Process-local read-through cache.

Entries carry their own absolute expiry (two tiers are used: a short one
for list views and a longer one for single-entity views). There is no
size bound and no LRU eviction; entries simply expire.

Handlers never reach for a global: they receive a ``Cache`` through the
``get_cache`` dependency, which reads the instance attached to
``app.state.cache`` at startup. Tests swap in a ``MemoryCache`` driven
by a fake clock.
"""

import math
import threading
import time
from typing import Any, Callable, Protocol

from cachetools import TLRUCache
from fastapi import Request


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()

INVENTORY_LIST_KEY = "inventory_list"
ORDERS_LIST_KEY = "orders_list"


def inventory_item_key(item_id: int) -> str:
    return f"inventory_item_{item_id}"


def order_detail_key(order_id: int) -> str:
    return f"order_detail_{order_id}"


class Cache(Protocol):
    def get(self, key: str, default: Any = MISSING) -> Any: ...

    def set(self, key: str, value: Any, ttl: float) -> None: ...

    def remove(self, key: str) -> bool: ...

    def clear(self) -> int: ...

    def __len__(self) -> int: ...


def _time_to_use(_key: str, entry: tuple, now: float) -> float:
    _value, ttl = entry
    return now + ttl


class MemoryCache:
    """Thread-safe key/value store with a per-entry TTL.

    ``get`` returns ``MISSING`` (or the supplied default) on a miss, so a
    stored ``None`` is a real hit; it is used to remember not-found
    lookups.
    """

    def __init__(self, timer: Callable[[], float] = time.monotonic):
        self._lock = threading.RLock()
        self._store = TLRUCache(maxsize=math.inf, ttu=_time_to_use, timer=timer)

    def get(self, key: str, default: Any = MISSING) -> Any:
        with self._lock:
            entry = self._store.get(key)
        if entry is None:
            return default
        return entry[0]

    def set(self, key: str, value: Any, ttl: float) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be > 0")
        with self._lock:
            self._store[key] = (value, ttl)

    def remove(self, key: str) -> bool:
        with self._lock:
            return self._store.pop(key, None) is not None

    def clear(self) -> int:
        """Drop every live entry and return how many there were."""
        with self._lock:
            self._store.expire()
            count = len(self._store)
            self._store.clear()
        return count

    def __len__(self) -> int:
        with self._lock:
            self._store.expire()
            return len(self._store)


def get_cache(request: Request) -> Cache:
    return request.app.state.cache
