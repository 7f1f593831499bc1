"""
Headless Page Session
无界面页面会话

Tracks the "current document" for coarse cache invalidation: its URL,
the cookie jar shared with its HTTP client, and reload/navigation.
"""

import logging
from typing import List, Optional

import httpx

from image_loader.url_utils import add_no_cache_headers

logger = logging.getLogger(__name__)


class Page:
    """
    A document loaded over HTTP.

    Usage:
        page = Page("https://shop.example.com/models")
        await page.reload(bypass_cache=True)
        await page.close()
    """

    def __init__(
        self,
        url: str,
        http_client: Optional[httpx.AsyncClient] = None,
        supports_hard_reload: bool = True,
    ):
        self._url = url
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(follow_redirects=True)
        self.supports_hard_reload = supports_hard_reload
        self.history: List[str] = [url]

    @property
    def url(self) -> str:
        return self._url

    @property
    def host(self) -> str:
        return httpx.URL(self._url).host

    @property
    def cookies(self) -> httpx.Cookies:
        return self.http_client.cookies

    async def reload(self, bypass_cache: bool = False) -> httpx.Response:
        """Re-request the current URL, optionally bypassing every cache layer."""
        headers = add_no_cache_headers() if bypass_cache else None
        logger.info(f"[Page] Reloading {self._url[:80]} (bypass_cache={bypass_cache})")
        return await self.http_client.get(self._url, headers=headers)

    async def navigate(self, url: str) -> httpx.Response:
        self._url = url
        self.history.append(url)
        logger.info(f"[Page] Navigating to {url[:80]}")
        return await self.http_client.get(url)

    async def close(self):
        """Close the HTTP client if this page created it."""
        if self._owns_client:
            await self.http_client.aclose()
