"""
Retrying Image Preloader

Handles:
- Loading a single image over HTTP and decoding it
- Bounded retries with linear backoff and a hard per-attempt timeout
- Batch preloads and accessibility checks for many URLs
"""

import asyncio
import logging
import re
from dataclasses import dataclass, replace
from io import BytesIO
from typing import Awaitable, Callable, List, Optional, Tuple

import httpx
from PIL import Image

from .config import (
    BACKOFF_STEP_MS,
    DEFAULT_HEADERS,
    IMAGE_ACCESSIBILITY_TIMEOUT_MS,
    IMAGE_BASE_URL,
    IMAGE_CACHE_BUST,
    IMAGE_RETRY_COUNT,
    IMAGE_TIMEOUT_MS,
)
from .url_utils import add_cache_buster

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


# ============================================
# Models
# ============================================

@dataclass(frozen=True)
class ImageLoadOptions:
    """Per-call load settings. Immutable; use with_overrides() to derive variants."""
    cache_bust: bool = IMAGE_CACHE_BUST
    retry_count: int = IMAGE_RETRY_COUNT
    timeout_ms: int = IMAGE_TIMEOUT_MS

    @property
    def max_attempts(self) -> int:
        # Zero or negative retry counts still make one attempt
        return max(1, self.retry_count)

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000

    def with_overrides(self, **changes) -> "ImageLoadOptions":
        return replace(self, **changes)


@dataclass(frozen=True)
class LoadedImage:
    """A successfully fetched and decoded image."""
    url: str                # Request URL that succeeded (busted if cache_bust)
    original_url: str
    content_type: str
    width: int
    height: int
    format: str
    data: bytes
    attempts: int


@dataclass
class PreloadResult:
    """Outcome of one URL in a batch."""
    url: str
    success: bool
    error: Optional[str] = None


@dataclass
class AccessibilityResult:
    url: str
    accessible: bool


class ImageLoadError(Exception):
    """Terminal failure after every attempt was used."""

    def __init__(self, url: str, attempts: int, reason: str = "failed"):
        self.url = url
        self.attempts = attempts
        self.reason = reason
        super().__init__(f"Image load {reason} after {attempts} attempts: {url}")


class ImageDecodeError(ValueError):
    """Payload could not be decoded as an image."""


# ============================================
# Decoding
# ============================================

SVG_CONTENT_TYPE = "image/svg+xml"

# XML declaration, comments and doctype may precede the root element
_SVG_ROOT_PATTERN = re.compile(
    rb"^\s*(?:<\?xml[^>]*\?>\s*|<!--.*?-->\s*|<!DOCTYPE[^>]*>\s*)*<svg[\s>/]",
    re.IGNORECASE | re.DOTALL,
)


def _is_svg(data: bytes, content_type: str) -> bool:
    """
    Detect an SVG document.

    Either the server says so, or the root element of the payload is <svg>.
    An <svg> nested inside another document does not count.
    """
    if content_type == SVG_CONTENT_TYPE:
        return True
    return _SVG_ROOT_PATTERN.match(data[:1024]) is not None


def decode_image(data: bytes, url: str, content_type: str = "") -> Tuple[int, int, str]:
    """
    Fully decode an image payload.

    HTML is always rejected; SVG is accepted without rasterizing; anything
    else must open and load in Pillow.

    Returns:
        Tuple of (width, height, format). Vector images report 0x0.
    """
    if not data:
        raise ImageDecodeError(f"Empty image payload: {url}")

    if content_type.startswith("text/html"):
        raise ImageDecodeError(f"Got an HTML page instead of an image: {url}")

    if _is_svg(data, content_type):
        return 0, 0, "SVG"

    try:
        with Image.open(BytesIO(data)) as img:
            img.load()
            return img.width, img.height, img.format or ""
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise ImageDecodeError(f"Cannot decode image {url}: {e}") from e


# ============================================
# Preloader
# ============================================

class ImagePreloader:
    """
    Loads images with retries, linear backoff and per-attempt timeouts.

    Usage:
        async with ImagePreloader() as preloader:
            image = await preloader.preload(url, ImageLoadOptions(retry_count=2))
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            base_url=IMAGE_BASE_URL,
            follow_redirects=True,
            headers=DEFAULT_HEADERS,
        )
        self._sleep = sleep

    async def close(self):
        """Close HTTP client if this preloader created it."""
        if self._owns_client:
            await self.http_client.aclose()

    async def __aenter__(self) -> "ImagePreloader":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _load_once(self, url: str, request_url: str, attempt: int) -> LoadedImage:
        response = await self.http_client.get(request_url)
        response.raise_for_status()

        data = response.content
        content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
        width, height, image_format = await asyncio.to_thread(decode_image, data, request_url, content_type)

        return LoadedImage(
            url=request_url,
            original_url=url,
            content_type=content_type,
            width=width,
            height=height,
            format=image_format,
            data=data,
            attempts=attempt,
        )

    async def preload(self, url: str, options: Optional[ImageLoadOptions] = None) -> LoadedImage:
        """
        Load a single image, retrying failed or timed-out attempts.

        Attempt n that fails waits n seconds before attempt n+1; the last
        failure raises ImageLoadError naming the URL and the attempt count.

        Args:
            url: Image URL (relative URLs resolve against IMAGE_BASE_URL)
            options: Load settings, defaults from configuration

        Returns:
            LoadedImage for the request URL that succeeded
        """
        options = options or ImageLoadOptions()
        if not url:
            raise ImageLoadError(url, 0)

        max_attempts = options.max_attempts
        attempts = 0

        while True:
            attempts += 1
            request_url = add_cache_buster(url) if options.cache_bust else url

            try:
                return await asyncio.wait_for(
                    self._load_once(url, request_url, attempts),
                    timeout=options.timeout_seconds,
                )
            except (asyncio.TimeoutError, httpx.TimeoutException):
                reason = "timeout"
            except Exception as e:
                reason = "failed"
                logger.debug(f"[ImagePreloader] Attempt {attempts} error for {url[:60]}: {e}")

            if attempts >= max_attempts:
                logger.error(f"[ImagePreloader] Image load {reason} after {attempts} attempts: {url[:80]}")
                raise ImageLoadError(url, attempts, reason)

            logger.warning(f"[ImagePreloader] Image load {reason}, retrying ({attempts}/{max_attempts}): {url[:80]}")
            await self._sleep(BACKOFF_STEP_MS * attempts / 1000)

    async def preload_batch(
        self,
        urls: List[str],
        options: Optional[ImageLoadOptions] = None,
    ) -> List[PreloadResult]:
        """
        Preload many images in parallel; one failure never aborts the batch.

        Returns one PreloadResult per input URL, in input order.
        """
        if not urls:
            return []

        logger.info(f"[ImagePreloader] Starting batch preload of {len(urls)} images")

        results = await asyncio.gather(
            *(self.preload(url, options) for url in urls),
            return_exceptions=True,
        )

        processed_results = []
        for url, result in zip(urls, results):
            if isinstance(result, BaseException):
                processed_results.append(PreloadResult(url=url, success=False, error=str(result)))
            else:
                processed_results.append(PreloadResult(url=url, success=True))

        success_count = sum(1 for r in processed_results if r.success)
        logger.info(f"[ImagePreloader] Batch complete: {success_count}/{len(urls)} success")
        return processed_results

    async def check_accessibility(self, url: str, timeout_ms: int = IMAGE_ACCESSIBILITY_TIMEOUT_MS) -> bool:
        """Single cache-busted attempt; never raises."""
        options = ImageLoadOptions(cache_bust=True, retry_count=1, timeout_ms=timeout_ms)
        try:
            await self.preload(url, options)
            return True
        except ImageLoadError:
            return False

    async def check_many(self, urls: List[str]) -> List[AccessibilityResult]:
        accessible = await asyncio.gather(*(self.check_accessibility(url) for url in urls))
        return [AccessibilityResult(url=url, accessible=ok) for url, ok in zip(urls, accessible)]

    async def refresh(self, urls: List[str]) -> None:
        """
        Re-request every URL with a fresh buster so caches drop stale copies.
        Failures are ignored.
        """
        async def _refresh_one(url: str) -> None:
            try:
                await self.http_client.get(add_cache_buster(url))
            except Exception as e:
                logger.debug(f"[ImagePreloader] Refresh failed for {url[:60]}: {e}")

        await asyncio.gather(*(_refresh_one(url) for url in urls if url))


# ============================================
# Module-level helpers
# ============================================

_default_preloader: Optional[ImagePreloader] = None


def get_default_preloader() -> ImagePreloader:
    global _default_preloader
    if _default_preloader is None:
        _default_preloader = ImagePreloader()
    return _default_preloader


async def preload_image(url: str, options: Optional[ImageLoadOptions] = None) -> LoadedImage:
    return await get_default_preloader().preload(url, options)


async def check_image_accessibility(url: str, timeout_ms: int = IMAGE_ACCESSIBILITY_TIMEOUT_MS) -> bool:
    return await get_default_preloader().check_accessibility(url, timeout_ms)


async def check_multiple_images(urls: List[str]) -> List[AccessibilityResult]:
    return await get_default_preloader().check_many(urls)


async def refresh_images(urls: List[str]) -> None:
    await get_default_preloader().refresh(urls)
