"""
Image Cache API Routes
图片缓存 API 路由

Provides HTTP endpoints for the in-memory blob cache:
- GET  /api/image-cache?url=   - Serve image bytes through the cache
- GET  /api/image-cache/stats  - Get cache statistics
- POST /api/image-cache/cleanup - Remove expired entries
- POST /api/image-cache/clear  - Clear all entries
"""

from typing import List

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import Response
from pydantic import BaseModel

from image_loader.config import BLOB_CACHE_TTL_SECONDS
from image_loader.routes_fastapi import validate_image_url

from .blob_cache import BlobCache

router = APIRouter(prefix="/api/image-cache", tags=["image-cache"])

# Shared cache for all requests
# 全局共享实例
image_cache = BlobCache(ttl_seconds=BLOB_CACHE_TTL_SECONDS)


# ============================================
# Response Models
# ============================================

class CacheStatsResponse(BaseModel):
    """Response model for stats endpoint"""
    size: int
    urls: List[str]
    total_bytes: int
    live_object_urls: int
    ttl_seconds: float


# ============================================
# API Endpoints
# ============================================

@router.get("")
@router.get("/")
async def get_cached_image(url: str = Query(..., description="URL of the image")):
    """
    Serve an image through the blob cache
    通过缓存返回图片

    Example:
        GET /api/image-cache?url=https://example.com/image.jpg
    """
    url = validate_image_url(url)
    hit = image_cache.is_fresh(url)

    object_url = await image_cache.get_cached_image(url)
    if object_url is None:
        raise HTTPException(status_code=404, detail="Image could not be fetched")

    try:
        blob = image_cache.object_urls.resolve(object_url)
    finally:
        image_cache.revoke(object_url)

    return Response(
        content=blob.data,
        media_type=blob.content_type,
        headers={
            "X-Cache": "HIT" if hit else "MISS",
            "Cache-Control": "no-cache",
        },
    )


@router.get("/stats", response_model=CacheStatsResponse)
async def get_cache_stats():
    """
    Get cache statistics
    获取缓存统计信息
    """
    return CacheStatsResponse(**image_cache.get_cache_stats())


@router.post("/cleanup")
async def cleanup_cache():
    """
    Clean up expired cache entries.

    This is automatically done on access, but can be triggered manually.
    """
    removed = image_cache.cleanup_expired()
    return {
        "success": True,
        "removed_entries": removed,
        "current_stats": image_cache.get_cache_stats(),
    }


@router.post("/clear")
async def clear_cache():
    """
    Clear all cache entries
    清空所有缓存

    Previously issued object-URLs are revoked.
    """
    count = image_cache.clear_image_cache()
    return {
        "success": True,
        "message": f"Cleared {count} cache entries",
        "deleted_count": count,
    }
