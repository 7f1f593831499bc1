"""
Catalog Image Service

FastAPI application exposing the image loader and the blob cache.

Run:
    cd backend
    uvicorn app:app --reload
"""

import logging

from fastapi import FastAPI

from cache import cache_router
from image_loader import router as image_loader_router
from image_loader.config import LOG_LEVEL

logging.basicConfig(
    level=LOG_LEVEL.upper(),
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)

app = FastAPI(title="Catalog Image Service")
app.include_router(image_loader_router)
app.include_router(cache_router)


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
