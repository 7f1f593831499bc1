"""
Image Loader API Routes

Provides endpoints for:
- Batch preloading images with retries
- Accessibility checks for one or many image URLs
- Health check
"""

import logging
from typing import List, Optional
from urllib.parse import unquote, urlparse

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import IMAGE_CACHE_BUST, IMAGE_MAX_BATCH, IMAGE_RETRY_COUNT, IMAGE_TIMEOUT_MS
from .preloader import ImageLoadOptions, ImagePreloader

logger = logging.getLogger(__name__)

# Shared preloader for all requests
preloader = ImagePreloader()


# ============================================
# Request/Response Models
# ============================================

class PreloadRequest(BaseModel):
    """Request model for batch preload."""
    urls: List[str] = Field(..., description="Image URLs to preload")
    cache_bust: bool = Field(IMAGE_CACHE_BUST, description="Append a cache-busting parameter")
    retry_count: int = Field(IMAGE_RETRY_COUNT, ge=1, le=10, description="Attempts per image")
    timeout_ms: int = Field(IMAGE_TIMEOUT_MS, gt=0, le=60000, description="Per-attempt timeout")


class PreloadItemResponse(BaseModel):
    url: str
    success: bool
    error: Optional[str] = None


class PreloadResponse(BaseModel):
    success: bool
    total_requested: int
    total_success: int
    total_failed: int
    results: List[PreloadItemResponse]


class CheckRequest(BaseModel):
    urls: List[str] = Field(..., description="Image URLs to check")


class CheckItemResponse(BaseModel):
    url: str
    accessible: bool


# ============================================
# Router
# ============================================

router = APIRouter(prefix="/api/image-loader", tags=["Image Loader"])


def validate_image_url(url: str) -> str:
    """Decode and validate an absolute http(s) URL, raising 400 otherwise."""
    url = unquote(url)
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise HTTPException(status_code=400, detail=f"Invalid URL: {url[:100]}")
    return url


# ============================================
# Endpoints
# ============================================

@router.post("/preload", response_model=PreloadResponse)
async def preload_images(request: PreloadRequest):
    """
    Preload a batch of images.

    Each image gets its own retry budget; failures are reported per URL
    and never abort the rest of the batch.
    """
    if len(request.urls) > IMAGE_MAX_BATCH:
        raise HTTPException(status_code=400, detail=f"Too many URLs (max {IMAGE_MAX_BATCH})")

    options = ImageLoadOptions(
        cache_bust=request.cache_bust,
        retry_count=request.retry_count,
        timeout_ms=request.timeout_ms,
    )
    results = await preloader.preload_batch(request.urls, options)
    total_success = sum(1 for r in results if r.success)

    return PreloadResponse(
        success=total_success == len(results),
        total_requested=len(request.urls),
        total_success=total_success,
        total_failed=len(results) - total_success,
        results=[PreloadItemResponse(url=r.url, success=r.success, error=r.error) for r in results],
    )


@router.get("/check", response_model=CheckItemResponse)
async def check_image(url: str = Query(..., description="Image URL to check")):
    """
    Check whether an image URL loads and decodes.

    Example:
        GET /api/image-loader/check?url=https://example.com/image.jpg
    """
    url = validate_image_url(url)
    accessible = await preloader.check_accessibility(url)
    return CheckItemResponse(url=url, accessible=accessible)


@router.post("/check", response_model=List[CheckItemResponse])
async def check_images(request: CheckRequest):
    """Check many image URLs concurrently."""
    if len(request.urls) > IMAGE_MAX_BATCH:
        raise HTTPException(status_code=400, detail=f"Too many URLs (max {IMAGE_MAX_BATCH})")

    results = await preloader.check_many(request.urls)
    return [CheckItemResponse(url=r.url, accessible=r.accessible) for r in results]


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return JSONResponse(content={
        "status": "healthy",
        "service": "image-loader",
        "defaults": {
            "cache_bust": IMAGE_CACHE_BUST,
            "retry_count": IMAGE_RETRY_COUNT,
            "timeout_ms": IMAGE_TIMEOUT_MS,
        },
    })
