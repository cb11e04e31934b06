"""Pyramid metadata records.

Records live in the Firebase Realtime Database under

/images/{image_id}/pyramid

and are validated with :class:`PyramidMetadata` on the way in and on the way
out. A record is only ever replaced whole.
"""
from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Any

import firebase_admin
from firebase_admin import credentials, db
from firebase_admin import exceptions as firebase_exceptions
from pydantic import ValidationError

from imagegate.config import Settings, get_settings
from imagegate.exceptions import NotFound, StoreUnavailable
from imagegate.models import PyramidMetadata

logger = logging.getLogger(__name__)


class MetadataStore(ABC):
    @abstractmethod
    def put(self, image_id: str, metadata: PyramidMetadata) -> None:
        """Publish the whole record; raises StoreUnavailable."""

    @abstractmethod
    def get(self, image_id: str) -> PyramidMetadata:
        """Raises NotFound when no record was published for ``image_id``."""


def _to_record(metadata: PyramidMetadata) -> dict[str, Any]:
    return metadata.model_dump(mode="json")


def _from_record(image_id: str, data: Any) -> PyramidMetadata:
    try:
        return PyramidMetadata.model_validate(data)
    except ValidationError as exc:
        logger.error("Stored pyramid metadata for image_id=%s is invalid: %s", image_id, exc)
        raise StoreUnavailable(f"Pyramid metadata for image_id={image_id} is corrupt") from exc


def _initialise_firebase(settings: Settings) -> None:
    """Initialise the Firebase Admin SDK exactly once."""
    if firebase_admin._apps:  # type: ignore[attr-defined]
        return
    if settings.firebase_credentials_json:
        # Accept path or JSON string
        cred_obj: credentials.Base = (
            credentials.Certificate(settings.firebase_credentials_json)
            if settings.firebase_credentials_json.endswith(".json")
            else credentials.Certificate(json.loads(settings.firebase_credentials_json))
        )
    else:
        # Attempt default credentials (useful on Cloud Run with workload identity)
        cred_obj = credentials.ApplicationDefault()

    firebase_admin.initialize_app(
        cred_obj,
        {
            "databaseURL": f"https://{settings.project_id}.firebaseio.com"
            if settings.project_id
            else None,
        },
    )
    logger.info("Firebase Admin SDK initialised.")


class FirebaseMetadataStore(MetadataStore):  # pylint: disable=too-few-public-methods
    """Wrapper around Firebase Realtime Database reads and writes."""

    def __init__(self, root: db.Reference | None = None) -> None:
        self._root = root if root is not None else db.reference("/")

    def _ref(self, image_id: str) -> db.Reference:
        return self._root.child("images").child(image_id).child("pyramid")

    def put(self, image_id: str, metadata: PyramidMetadata) -> None:
        try:
            self._ref(image_id).set(_to_record(metadata))
        except firebase_exceptions.FirebaseError as exc:
            raise StoreUnavailable(f"Metadata write for image_id={image_id} failed: {exc}") from exc
        logger.debug("Pyramid metadata set for image_id=%s", image_id)

    def get(self, image_id: str) -> PyramidMetadata:
        try:
            data = self._ref(image_id).get()
        except firebase_exceptions.FirebaseError as exc:
            raise StoreUnavailable(f"Metadata read for image_id={image_id} failed: {exc}") from exc
        if data is None:
            raise NotFound(f"No pyramid metadata for image_id={image_id}")
        return _from_record(image_id, data)


class InMemoryMetadataStore(MetadataStore):
    """Keeps serialized records in a dict so reads go through validation too."""

    def __init__(self) -> None:
        self._records: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def put(self, image_id: str, metadata: PyramidMetadata) -> None:
        record = _to_record(metadata)
        with self._lock:
            self._records[image_id] = record

    def get(self, image_id: str) -> PyramidMetadata:
        with self._lock:
            data = self._records.get(image_id)
        if data is None:
            raise NotFound(f"No pyramid metadata for image_id={image_id}")
        return _from_record(image_id, data)

    def __contains__(self, image_id: str) -> bool:
        with self._lock:
            return image_id in self._records


@lru_cache()
def get_metadata_store() -> MetadataStore:
    settings = get_settings()
    if settings.storage_backend == "memory":
        return InMemoryMetadataStore()
    _initialise_firebase(settings)
    return FirebaseMetadataStore()
