"""
Object-URL Registry
对象 URL 注册表

Process-local, revocable reference strings over in-memory blobs.
An object-URL stays resolvable until it is revoked; every call to
create_object_url() returns a new, independently revocable URL even
for the same blob.
"""

import uuid
from dataclasses import dataclass
from typing import Dict

OBJECT_URL_SCHEME = "blob:"


class RevokedObjectUrlError(LookupError):
    """Raised when an object-URL is unknown or has been revoked."""


@dataclass(frozen=True)
class Blob:
    """Immutable binary payload with its MIME type."""
    data: bytes
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.data)


class ObjectUrlRegistry:
    """
    Maps object-URLs to blobs.

    Usage:
        registry = ObjectUrlRegistry()
        object_url = registry.create_object_url(blob)
        blob = registry.resolve(object_url)
        registry.revoke_object_url(object_url)
    """

    def __init__(self, origin: str = "local"):
        self._origin = origin
        self._urls: Dict[str, Blob] = {}

    def create_object_url(self, blob: Blob) -> str:
        object_url = f"{OBJECT_URL_SCHEME}{self._origin}/{uuid.uuid4()}"
        self._urls[object_url] = blob
        return object_url

    def revoke_object_url(self, object_url: str) -> bool:
        """
        Release an object-URL.

        Returns:
            True if the URL was live, False if it was unknown or already revoked.
        """
        return self._urls.pop(object_url, None) is not None

    def resolve(self, object_url: str) -> Blob:
        try:
            return self._urls[object_url]
        except KeyError:
            raise RevokedObjectUrlError(f"Object URL is not live: {object_url}") from None

    def __contains__(self, object_url: object) -> bool:
        return object_url in self._urls

    def __len__(self) -> int:
        return len(self._urls)
