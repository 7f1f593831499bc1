"""
Image Loader Module

Loads catalog images for UI consumption.

Features:
- Cache-busting URL helpers
- Retrying preloader with linear backoff and per-attempt timeouts
- Stateful loader exposing resolved source, loading and error flags
  with retry / force-reload actions and stale-result suppression
"""

from .loader import ImageLoader, LoaderState, LoaderStatus, ModelImageLoader
from .preloader import (
    ImageLoadError,
    ImageLoadOptions,
    ImagePreloader,
    LoadedImage,
    PreloadResult,
    preload_image,
)
from .routes_fastapi import router
from .url_utils import add_cache_buster, add_no_cache_headers

__all__ = [
    "router",
    "ImageLoader",
    "ModelImageLoader",
    "LoaderState",
    "LoaderStatus",
    "ImagePreloader",
    "ImageLoadOptions",
    "ImageLoadError",
    "LoadedImage",
    "PreloadResult",
    "preload_image",
    "add_cache_buster",
    "add_no_cache_headers",
]
