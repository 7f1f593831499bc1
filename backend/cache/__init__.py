"""
Image Cache Module
图片缓存模块

Provides the in-memory blob cache for short-lived image reuse and the
cache manager for coarse ("hard refresh") invalidation.
"""

from .blob_cache import BlobCache, CacheEntry, CACHE_DURATION
from .cache_manager import CacheManager, CacheStrategy
from .routes import router as cache_router, image_cache

__all__ = [
    "BlobCache",
    "CacheEntry",
    "CACHE_DURATION",
    "CacheManager",
    "CacheStrategy",
    "cache_router",
    "image_cache",
]
