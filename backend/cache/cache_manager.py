"""
Cache Manager
缓存管理器

Coarse invalidation for "hard refresh" recovery paths:
- Purge named cache storage (service-worker caches)
- Clear local/session key-value storage
- Expire cookies visible to the current page
- Force a full page reload bypassing caches
- Batch-preload images with cache busting

Every operation is best-effort: failures are logged, never raised.
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional

import httpx

from host.page import Page
from host.storage import CacheStorage, KeyValueStorage
from image_loader.config import APP_ENV
from image_loader.preloader import PreloadResult, decode_image
from image_loader.url_utils import (
    MANAGER_CACHE_BUST_PARAM,
    add_cache_buster,
    add_no_cache_headers,
    set_cache_buster,
)

logger = logging.getLogger(__name__)

DEVELOPMENT_HOSTS = {"localhost", "127.0.0.1"}
REFRESH_QUERY_PARAMS = ("nocache", "refresh")


class CacheStrategy(str, Enum):
    """缓存策略"""
    AGGRESSIVE = "aggressive"
    MODERATE = "moderate"
    MINIMAL = "minimal"


def _domain_matches(host: str, domain: str) -> bool:
    domain = domain.lstrip(".").lower()
    host = host.lower()
    return bool(domain) and (host == domain or host.endswith("." + domain))


class CacheManager:
    """
    Clears every cache layer the page can reach.

    Usage:
        manager = CacheManager(page, cache_storage, local_storage, session_storage)
        await manager.clear_all_caches()
        await manager.force_reload()
    """

    def __init__(
        self,
        page: Page,
        cache_storage: Optional[CacheStorage] = None,
        local_storage: Optional[KeyValueStorage] = None,
        session_storage: Optional[KeyValueStorage] = None,
    ):
        self.page = page
        self.cache_storage = cache_storage or CacheStorage()
        self.local_storage = local_storage or KeyValueStorage()
        self.session_storage = session_storage or KeyValueStorage()

    # ============================================
    # Individual clears
    # ============================================

    async def clear_service_worker_cache(self) -> None:
        """Delete every named cache in cache storage."""
        try:
            cache_names = await self.cache_storage.keys()
            await asyncio.gather(*(self.cache_storage.delete(name) for name in cache_names))
            logger.info(f"[CacheManager] Service worker cache cleared ({len(cache_names)} caches)")
        except Exception as e:
            logger.warning(f"[CacheManager] Failed to clear service worker cache: {e}")

    def clear_browser_storage(self) -> None:
        """Clear local and session storage."""
        try:
            self.local_storage.clear()
            self.session_storage.clear()
            logger.info("[CacheManager] Browser storage cleared")
        except Exception as e:
            logger.warning(f"[CacheManager] Failed to clear browser storage: {e}")

    def clear_domain_cookies(self, domain: Optional[str] = None) -> None:
        """
        Expire cookies visible to the current page.

        Args:
            domain: Also expire cookies scoped to this domain suffix
        """
        try:
            jar = self.page.cookies.jar
            host = self.page.host
            removed = 0
            for cookie in list(jar):
                # Host-only cookies without a domain are sent to the page too
                visible = not cookie.domain or _domain_matches(host, cookie.domain)
                scoped = domain is not None and _domain_matches(cookie.domain.lstrip("."), domain)
                if visible or scoped:
                    jar.clear(cookie.domain, cookie.path, cookie.name)
                    removed += 1
            logger.info(f"[CacheManager] Domain cookies cleared ({removed} removed)")
        except Exception as e:
            logger.warning(f"[CacheManager] Failed to clear cookies: {e}")

    async def force_reload(self) -> None:
        """
        Reload the page bypassing caches, or navigate to a cache-busted URL
        when hard reload is unavailable.
        """
        try:
            if self.page.supports_hard_reload:
                await self.page.reload(bypass_cache=True)
            else:
                await self.page.navigate(set_cache_buster(self.page.url, MANAGER_CACHE_BUST_PARAM))
        except Exception as e:
            logger.warning(f"[CacheManager] Failed to force reload: {e}")

    async def preload_images_with_cache_bust(self, urls: List[str]) -> List[PreloadResult]:
        """
        Fetch every URL with a cache buster and no-cache headers.
        A URL only counts as preloaded if its payload decodes as an image.

        Returns:
            One PreloadResult per URL, in input order.
        """
        async def _preload_one(url: str) -> PreloadResult:
            try:
                request_url = self.add_cache_buster(url)
                response = await self.page.http_client.get(request_url, headers=add_no_cache_headers())
                response.raise_for_status()
                content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
                await asyncio.to_thread(decode_image, response.content, request_url, content_type)
                return PreloadResult(url=url, success=True)
            except Exception as e:
                return PreloadResult(url=url, success=False, error=f"Failed to load: {url} ({e})")

        results = list(await asyncio.gather(*(_preload_one(url) for url in urls)))

        failed = [r for r in results if not r.success]
        if failed:
            logger.warning(f"[CacheManager] {len(failed)}/{len(urls)} images failed to preload")
        else:
            logger.info(f"[CacheManager] Successfully preloaded {len(urls)} images with cache busting")
        return results

    # ============================================
    # Combined clear
    # ============================================

    async def clear_all_caches(self) -> None:
        """
        Run the cache, storage and cookie clears concurrently and wait for all
        of them; one failing never affects the others.
        """
        operations: Dict[str, Callable[[], Awaitable[None]]] = {
            "service_worker_cache": self.clear_service_worker_cache,
            "browser_storage": self._as_task(self.clear_browser_storage),
            "domain_cookies": self._as_task(self.clear_domain_cookies),
        }

        results = await asyncio.gather(
            *(operation() for operation in operations.values()),
            return_exceptions=True,
        )

        for name, result in zip(operations, results):
            if isinstance(result, Exception):
                logger.warning(f"[CacheManager] {name} clear failed: {result}")

    @staticmethod
    def _as_task(func: Callable[[], None]) -> Callable[[], Awaitable[None]]:
        async def _run() -> None:
            func()
        return _run

    # ============================================
    # Helpers
    # ============================================

    @staticmethod
    def add_no_cache_headers(headers: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        return add_no_cache_headers(headers)

    @staticmethod
    def add_cache_buster(url: str, param: str = MANAGER_CACHE_BUST_PARAM) -> str:
        return add_cache_buster(url, param=param)

    def is_development(self) -> bool:
        return APP_ENV == "development" or self.page.host in DEVELOPMENT_HOSTS

    def get_cache_strategy(self) -> CacheStrategy:
        if self.is_development():
            return CacheStrategy.AGGRESSIVE

        params = httpx.URL(self.page.url).params
        if any(name in params for name in REFRESH_QUERY_PARAMS):
            return CacheStrategy.AGGRESSIVE

        return CacheStrategy.MODERATE
