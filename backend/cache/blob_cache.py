"""
In-Memory Blob Cache
内存图片缓存

Short-lived image reuse across consumers of the same URL.

Features:
- Keyed by the original (non-busted) URL
- TTL-based expiry only (5 minutes by default)
- Serves object-URLs over cached blobs
- Fetch failures degrade to "not cached" (None), never raise
"""

import time
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import httpx

from host.object_urls import Blob, ObjectUrlRegistry
from image_loader.config import DEFAULT_HEADERS, IMAGE_BASE_URL
from image_loader.url_utils import MANAGER_CACHE_BUST_PARAM, add_cache_buster, add_no_cache_headers

logger = logging.getLogger(__name__)

# Freshness window in seconds
CACHE_DURATION = 5 * 60


@dataclass
class CacheEntry:
    """
    Cache entry data structure
    缓存条目数据结构
    """
    url: str                         # Original URL (cache key)
    blob: Blob                       # Cached payload
    timestamp: float                 # Unix timestamp when fetched
    object_urls: List[str] = field(default_factory=list)  # Object-URLs handed out, not yet revoked

    def is_fresh(self, now: float, ttl: float) -> bool:
        return now - self.timestamp < ttl


class BlobCache:
    """
    TTL cache of image blobs shared by reference between consumers.

    Concurrent misses for the same URL both fetch; the last store wins.

    Usage:
        cache = BlobCache()
        object_url = await cache.get_cached_image(url)
        if object_url:
            blob = cache.object_urls.resolve(object_url)
    """

    def __init__(
        self,
        ttl_seconds: float = CACHE_DURATION,
        http_client: Optional[httpx.AsyncClient] = None,
        object_urls: Optional[ObjectUrlRegistry] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize blob cache

        Args:
            ttl_seconds: Freshness window (5 minutes by default)
            http_client: Client used for misses; created and owned if omitted
            object_urls: Registry issuing object-URLs; private one if omitted
            clock: Time source in seconds
        """
        self._store: Dict[str, CacheEntry] = {}
        self._ttl = ttl_seconds
        self._clock = clock
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            base_url=IMAGE_BASE_URL,
            follow_redirects=True,
            headers=DEFAULT_HEADERS,
        )
        self.object_urls = object_urls or ObjectUrlRegistry()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    async def close(self):
        """Close HTTP client if this cache created it."""
        if self._owns_client:
            await self.http_client.aclose()

    async def cache_image(self, url: str) -> Optional[Blob]:
        """
        Fetch an image bypassing every cache layer and store it.

        Returns:
            The stored Blob, or None if the fetch failed.
        """
        entry = await self._fetch_entry(url)
        return entry.blob if entry is not None else None

    async def _fetch_entry(self, url: str) -> Optional[CacheEntry]:
        try:
            response = await self.http_client.get(
                add_cache_buster(url, param=MANAGER_CACHE_BUST_PARAM),
                headers=add_no_cache_headers(),
            )
            response.raise_for_status()
        except Exception as e:
            logger.warning(f"[BlobCache] Failed to cache image: {url[:60]}... ({e})")
            return None

        content_type = response.headers.get("content-type", "application/octet-stream").split(";")[0].strip()
        blob = Blob(data=response.content, content_type=content_type)

        previous = self._store.get(url)
        entry = CacheEntry(url=url, blob=blob, timestamp=self._clock())
        if previous is not None:
            # Keep tracking object-URLs of a concurrently replaced entry
            entry.object_urls.extend(previous.object_urls)
        self._store[url] = entry

        logger.debug(f"[BlobCache] Cached: {url[:50]}... ({blob.size} bytes)")
        return entry

    async def get_cached_image(self, url: str) -> Optional[str]:
        """
        Get an object-URL for the image, fetching it if absent or expired.

        Returns:
            A new object-URL, or None if the image could not be fetched.
        """
        entry = self._store.get(url)

        if entry is not None and entry.is_fresh(self._clock(), self._ttl):
            logger.debug(f"[BlobCache] Cache hit: {url[:50]}...")
            return self._issue_object_url(entry)

        if entry is not None:
            logger.debug(f"[BlobCache] Cache expired for: {url[:50]}...")
            self._remove_entry(url)

        entry = await self._fetch_entry(url)
        if entry is None:
            return None
        return self._issue_object_url(entry)

    def is_fresh(self, url: str) -> bool:
        entry = self._store.get(url)
        return entry is not None and entry.is_fresh(self._clock(), self._ttl)

    def revoke(self, object_url: str) -> bool:
        """Release one object-URL previously returned by get_cached_image()."""
        for entry in self._store.values():
            if object_url in entry.object_urls:
                entry.object_urls.remove(object_url)
                break
        return self.object_urls.revoke_object_url(object_url)

    def _issue_object_url(self, entry: CacheEntry) -> str:
        object_url = self.object_urls.create_object_url(entry.blob)
        entry.object_urls.append(object_url)
        return object_url

    def _remove_entry(self, url: str) -> None:
        """Remove an entry and revoke its object-URLs."""
        entry = self._store.pop(url, None)
        if entry is None:
            return
        for object_url in entry.object_urls:
            self.object_urls.revoke_object_url(object_url)

    def cleanup_expired(self) -> int:
        """
        Remove all expired entries.

        Returns:
            Number of entries removed.
        """
        now = self._clock()
        expired = [
            url for url, entry in self._store.items()
            if not entry.is_fresh(now, self._ttl)
        ]
        for url in expired:
            self._remove_entry(url)

        if expired:
            logger.info(f"[BlobCache] Cleaned up {len(expired)} expired entries")
        return len(expired)

    def clear_image_cache(self) -> int:
        """
        Revoke every tracked object-URL and empty the cache
        清空所有缓存

        Returns:
            Number of entries removed.
        """
        count = len(self._store)
        for url in list(self._store):
            self._remove_entry(url)

        logger.info(f"[BlobCache] Cleared all {count} entries")
        return count

    def get_cache_stats(self) -> Dict[str, Any]:
        """
        Get cache statistics
        获取缓存统计信息
        """
        return {
            "size": len(self._store),
            "urls": list(self._store.keys()),
            "total_bytes": sum(entry.blob.size for entry in self._store.values()),
            "live_object_urls": sum(len(entry.object_urls) for entry in self._store.values()),
            "ttl_seconds": self._ttl,
        }
