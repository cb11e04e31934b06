"""Blob storage for original and derived image levels.

Objects are stored under the following key patterns:

    {container_id}/{image_id}.{ext}             single-level / canonical original
    {container_id}/{image_id}/{width}w.{ext}    levels of a multi-level image

Paths are chosen by the pyramid generator; the stores treat them as opaque.
"""
from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from functools import lru_cache

from google.api_core import exceptions as gcs_exceptions
from google.cloud import storage

from imagegate.config import get_settings
from imagegate.exceptions import NotFound, StoreUnavailable

logger = logging.getLogger(__name__)

_CONTENT_TYPES = {
    "jpg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "gif": "image/gif",
    "bmp": "image/bmp",
    "tif": "image/tiff",
}


class BlobStore(ABC):
    """Interface of the object store holding image bytes."""

    @abstractmethod
    def put(self, path: str, data: bytes, *, content_type: str | None = None) -> None:
        """Write ``data`` at ``path``; raises StoreUnavailable."""

    @abstractmethod
    def get(self, path: str) -> bytes:
        """Return the bytes at ``path``; raises NotFound."""

    @abstractmethod
    def exists(self, path: str) -> bool:
        ...


class GcsBlobStore(BlobStore):  # pylint: disable=too-few-public-methods
    """Wrapper around Google Cloud Storage uploads and downloads."""

    def __init__(self, bucket_name: str, client: storage.Client | None = None) -> None:
        self._client = client or storage.Client()
        self._bucket = self._client.bucket(bucket_name)
        self._bucket_name = bucket_name

    def put(self, path: str, data: bytes, *, content_type: str | None = None) -> None:
        blob = self._bucket.blob(path)
        try:
            blob.upload_from_string(data, content_type=content_type or content_type_for(path))
        except gcs_exceptions.GoogleAPIError as exc:
            raise StoreUnavailable(f"Upload of gs://{self._bucket_name}/{path} failed: {exc}") from exc
        logger.debug("Uploaded %d bytes to gs://%s/%s", len(data), self._bucket_name, path)

    def get(self, path: str) -> bytes:
        blob = self._bucket.blob(path)
        try:
            return blob.download_as_bytes()
        except gcs_exceptions.NotFound as exc:
            raise NotFound(f"gs://{self._bucket_name}/{path}") from exc
        except gcs_exceptions.GoogleAPIError as exc:
            raise StoreUnavailable(f"Download of gs://{self._bucket_name}/{path} failed: {exc}") from exc

    def exists(self, path: str) -> bool:
        return self._bucket.blob(path).exists()


class InMemoryBlobStore(BlobStore):
    """Process-local store for tests and ``STORAGE_BACKEND=memory``."""

    def __init__(self) -> None:
        self._objects: dict[str, tuple[bytes, str | None]] = {}
        self._lock = threading.Lock()

    def put(self, path: str, data: bytes, *, content_type: str | None = None) -> None:
        with self._lock:
            self._objects[path] = (bytes(data), content_type or content_type_for(path))

    def get(self, path: str) -> bytes:
        with self._lock:
            try:
                return self._objects[path][0]
            except KeyError:
                raise NotFound(path) from None

    def exists(self, path: str) -> bool:
        with self._lock:
            return path in self._objects

    def paths(self) -> list[str]:
        with self._lock:
            return sorted(self._objects)


# ------------------------------------------------------------------
# Helper functions
# ------------------------------------------------------------------

def content_type_for(path: str) -> str:
    ext = path.rsplit(".", 1)[-1].lower() if "." in path else ""
    return _CONTENT_TYPES.get(ext, "application/octet-stream")


@lru_cache()
def get_blob_store() -> BlobStore:
    settings = get_settings()
    if settings.storage_backend == "memory":
        return InMemoryBlobStore()
    return GcsBlobStore(settings.bucket_name)
