"""
Image Loader Configuration

Environment-driven defaults for the preloader, the stateful loader and
the blob cache.
"""

import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# ============================================
# Preloader
# ============================================

IMAGE_CACHE_BUST = _env_bool("IMAGE_CACHE_BUST", True)
IMAGE_RETRY_COUNT = int(os.getenv("IMAGE_RETRY_COUNT", "3"))
IMAGE_TIMEOUT_MS = int(os.getenv("IMAGE_TIMEOUT_MS", "10000"))
MODEL_IMAGE_TIMEOUT_MS = int(os.getenv("MODEL_IMAGE_TIMEOUT_MS", "15000"))
IMAGE_ACCESSIBILITY_TIMEOUT_MS = int(os.getenv("IMAGE_ACCESSIBILITY_TIMEOUT_MS", "5000"))

# Linear backoff: attempt n waits n * BACKOFF_STEP_MS before the next try
BACKOFF_STEP_MS = 1000

# Base for relative image URLs coming from the catalog API
IMAGE_BASE_URL = os.getenv("IMAGE_BASE_URL", "")

IMAGE_MAX_BATCH = int(os.getenv("IMAGE_MAX_BATCH", "50"))

# ============================================
# Blob cache
# ============================================

BLOB_CACHE_TTL_SECONDS = int(os.getenv("BLOB_CACHE_TTL_SECONDS", str(5 * 60)))

# ============================================
# Environment
# ============================================

APP_ENV = os.getenv("APP_ENV", "production")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Browser-like headers for image requests
DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Accept": "image/avif,image/webp,image/apng,image/svg+xml,image/*,*/*;q=0.8",
}
