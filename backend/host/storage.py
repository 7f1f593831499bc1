"""
Host Storage
宿主存储

- KeyValueStorage: string key/value store with Web Storage semantics
  (local storage and session storage are two instances)
- CacheStorage: named response caches, the service-worker cache API shape
"""

import asyncio
from typing import Dict, List, Optional


class KeyValueStorage:
    """In-memory string key/value storage."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = str(value)

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def key(self, index: int) -> Optional[str]:
        keys = list(self._items)
        return keys[index] if 0 <= index < len(keys) else None

    def keys(self) -> List[str]:
        return list(self._items)

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)


class CacheStorage:
    """
    Named caches mapping request URLs to response bodies.

    Methods are coroutines so callers treat them like the platform API,
    which is asynchronous.
    """

    def __init__(self):
        self._caches: Dict[str, Dict[str, bytes]] = {}
        self._lock = asyncio.Lock()

    async def open(self, name: str) -> Dict[str, bytes]:
        async with self._lock:
            return self._caches.setdefault(name, {})

    async def has(self, name: str) -> bool:
        return name in self._caches

    async def keys(self) -> List[str]:
        return list(self._caches)

    async def delete(self, name: str) -> bool:
        async with self._lock:
            return self._caches.pop(name, None) is not None
