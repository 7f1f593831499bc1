"""
Host Primitives Module

In-process stand-ins for the browser facilities the image layer relies on:

- Blobs and revocable object-URLs
- Local/session key-value storage and named cache storage
- A headless page session (current URL, cookies, reload/navigate)
"""

from .object_urls import Blob, ObjectUrlRegistry, RevokedObjectUrlError
from .storage import KeyValueStorage, CacheStorage
from .page import Page

__all__ = [
    "Blob",
    "ObjectUrlRegistry",
    "RevokedObjectUrlError",
    "KeyValueStorage",
    "CacheStorage",
    "Page",
]
