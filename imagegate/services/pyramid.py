"""Pyramid generation for uploaded images.

Small originals are served as-is. Large ones (by byte size or by their longest
side) additionally get a half-width JPEG preview so clients can render an
overview quickly. The original is always kept untouched as the ``full`` level.

Everything that influences the preview bytes is a module constant so that
deriving twice from the same original yields identical output.
"""
from __future__ import annotations

import io
import logging
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from functools import lru_cache

from PIL import Image as PILImage
from PIL import UnidentifiedImageError

from imagegate.exceptions import PersistFailure, ResizeFailure, StoreUnavailable, UnsupportedFormat
from imagegate.models import Decision, Image, ImageFormat, ImageLevel, LevelPurpose, PyramidMetadata
from imagegate.services.metadata_db import MetadataStore, get_metadata_store
from imagegate.services.storage import BlobStore, get_blob_store

logger = logging.getLogger(__name__)

BYTE_SIZE_CEILING = 1_000_000  # bytes
PIXEL_CEILING = 2048  # longest side, pixels

PREVIEW_FORMAT = "JPEG"
PREVIEW_EXTENSION = "jpg"
PREVIEW_QUALITY = 85
PREVIEW_RESAMPLE = PILImage.Resampling.LANCZOS
PREVIEW_BACKGROUND = (255, 255, 255, 255)

_ALPHA_MODES = frozenset({"RGBA", "RGBa", "LA", "La", "PA"})
_OPAQUE_MODES = frozenset({"1", "L", "P", "RGB", "CMYK", "YCbCr"})

# Pillow format name -> (format class, file extension)
_FORMATS: dict[str, tuple[ImageFormat, str]] = {
    "PNG": (ImageFormat.LOSSLESS, "png"),
    "BMP": (ImageFormat.LOSSLESS, "bmp"),
    "TIFF": (ImageFormat.LOSSLESS, "tif"),
    "GIF": (ImageFormat.LOSSLESS, "gif"),
    "JPEG": (ImageFormat.LOSSY, "jpg"),
    "WEBP": (ImageFormat.OTHER, "webp"),
}


# ------------------------------------------------------------------
# Pure helpers
# ------------------------------------------------------------------

def inspect(original: bytes) -> tuple[int, int, ImageFormat, str]:
    """Return ``(width, height, format, extension)`` read from the image header."""
    try:
        with PILImage.open(io.BytesIO(original)) as img:
            width, height = img.size
            decoder_format = (img.format or "").upper()
    except (UnidentifiedImageError, PILImage.DecompressionBombError, OSError, ValueError) as exc:
        raise UnsupportedFormat(f"Cannot decode image: {exc}") from exc

    fmt, ext = _FORMATS.get(decoder_format, (ImageFormat.OTHER, decoder_format.lower() or "bin"))
    return width, height, fmt, ext


def evaluate(width: int, height: int, byte_size: int, fmt: ImageFormat | None = None) -> Decision:
    """Decide whether an original needs a preview level.

    Either ceiling alone is enough; a value exactly at a ceiling does not
    trigger derivation. ``fmt`` does not move the thresholds.
    """
    if byte_size > BYTE_SIZE_CEILING or max(width, height) > PIXEL_CEILING:
        return Decision.MULTI_LEVEL
    return Decision.SINGLE_LEVEL


def preview_size(width: int, height: int) -> tuple[int, int]:
    """Half the width (floor), height scaled to keep the aspect ratio."""
    preview_width = width // 2
    if preview_width < 1:
        raise ResizeFailure(f"Image {width}x{height} is too narrow for a half-width preview")
    return preview_width, max(1, round(height * preview_width / width))


def canonical_path(image: Image) -> str:
    return f"{image.container_id}/{image.image_id}.{image.extension}"


def level_path(image: Image, width: int, extension: str) -> str:
    return f"{image.container_id}/{image.image_id}/{width}w.{extension}"


def flatten_to_rgb(img: PILImage.Image) -> PILImage.Image:
    """Map a decoded original onto 8-bit RGB for the JPEG preview.

    16-bit and float samples are scaled down from the 16-bit range, and
    transparent pixels are composited onto ``PREVIEW_BACKGROUND``.
    """
    mode = img.mode
    if mode.startswith("I;16"):
        img = img.convert("I")
        mode = "I"
    if mode in ("I", "F"):
        return img.point(lambda v: v * (1 / 256)).convert("L").convert("RGB")

    if mode in _ALPHA_MODES or "transparency" in img.info:
        background = PILImage.new("RGBA", img.size, PREVIEW_BACKGROUND)
        return PILImage.alpha_composite(background, img.convert("RGBA")).convert("RGB")

    if mode in _OPAQUE_MODES:
        return img.convert("RGB")
    raise ResizeFailure(f"Pixel mode {mode} has no preview mapping")


def _encode_preview(original: bytes, size: tuple[int, int]) -> bytes:
    with PILImage.open(io.BytesIO(original)) as img:
        try:
            img.load()
        except (OSError, SyntaxError, ValueError) as exc:
            raise UnsupportedFormat(f"Cannot decode image: {exc}") from exc

        try:
            rgb = flatten_to_rgb(img)
            resized = rgb.resize(size, PREVIEW_RESAMPLE)
            buffer = io.BytesIO()
            resized.save(
                buffer,
                format=PREVIEW_FORMAT,
                quality=PREVIEW_QUALITY,
                optimize=True,
                progressive=False,
                subsampling=2,  # 4:2:0
            )
        except (OSError, ValueError) as exc:
            raise ResizeFailure(f"Preview {size[0]}x{size[1]} could not be produced: {exc}") from exc
    return buffer.getvalue()


# ------------------------------------------------------------------
# Generator
# ------------------------------------------------------------------

class PyramidGenerator:
    """Derives and publishes the levels of freshly uploaded images."""

    def __init__(self, blob_store: BlobStore, metadata_store: MetadataStore) -> None:
        self._blobs = blob_store
        self._metadata = metadata_store

    def ingest(self, container_id: str, original: bytes, *, image_id: str | None = None) -> Image:
        """Store an upload at its canonical path and return its Image record.

        The canonical copy is written before any derivation so the upload
        stays reachable even if pyramid generation later fails.
        """
        width, height, fmt, ext = inspect(original)
        image = Image(
            image_id=image_id or str(uuid.uuid4()),
            container_id=container_id,
            byte_size=len(original),
            width=width,
            height=height,
            format=fmt,
            extension=ext,
        )
        self._blobs.put(canonical_path(image), original)
        logger.info(
            "Stored original image_id=%s container_id=%s (%dx%d, %d bytes, %s)",
            image.image_id,
            container_id,
            width,
            height,
            image.byte_size,
            fmt.value,
            extra={"image_id": image.image_id, "container_id": container_id},
        )
        return image

    def derive(self, original: bytes, decision: Decision, image: Image) -> PyramidMetadata:
        width, height, fmt, _ = inspect(original)

        if decision is Decision.SINGLE_LEVEL:
            full_path = canonical_path(image)
        else:
            full_path = level_path(image, width, image.extension)
        levels = [
            ImageLevel(
                width=width,
                height=height,
                path=full_path,
                byte_size=len(original),
                purpose=LevelPurpose.FULL,
                content=original,
            )
        ]

        if decision is Decision.MULTI_LEVEL:
            size = preview_size(width, height)
            preview = _encode_preview(original, size)
            levels.append(
                ImageLevel(
                    width=size[0],
                    height=size[1],
                    path=level_path(image, size[0], PREVIEW_EXTENSION),
                    byte_size=len(preview),
                    purpose=LevelPurpose.PREVIEW,
                    content=preview,
                )
            )

        return PyramidMetadata(
            image_id=image.image_id,
            original_width=width,
            original_height=height,
            original_byte_size=len(original),
            format=fmt,
            levels=levels,
        )

    def persist(self, metadata: PyramidMetadata) -> None:
        """Write every level blob, wait for all of them, then publish the metadata."""
        for level in metadata.levels:
            if level.content is None:
                raise PersistFailure(f"Level {level.path} carries no content to write")

        failures: list[tuple[str, BaseException]] = []
        with ThreadPoolExecutor(max_workers=len(metadata.levels)) as pool:
            futures = {
                pool.submit(self._blobs.put, level.path, level.content): level.path
                for level in metadata.levels
            }
            for future in as_completed(futures):
                exc = future.exception()
                if exc is not None:
                    failures.append((futures[future], exc))

        if failures:
            path, exc = failures[0]
            logger.error(
                "Pyramid publish for image_id=%s abandoned; %d level write(s) failed, first at %s: %s",
                metadata.image_id,
                len(failures),
                path,
                exc,
            )
            raise PersistFailure(f"Writing level {path} failed: {exc}") from exc

        try:
            self._metadata.put(metadata.image_id, metadata)
        except StoreUnavailable as exc:
            raise PersistFailure(f"Writing metadata for {metadata.image_id} failed: {exc}") from exc
        logger.info(
            "Published %s pyramid for image_id=%s (%s)",
            metadata.decision.value,
            metadata.image_id,
            ", ".join(f"{lvl.purpose.value}={lvl.width}x{lvl.height}" for lvl in metadata.levels),
            extra={"image_id": metadata.image_id, "decision": metadata.decision.value},
        )

    def generate(self, image: Image, original: bytes) -> PyramidMetadata:
        """Evaluate, derive and persist; a failed preview falls back to single-level."""
        decision = evaluate(image.width, image.height, image.byte_size, image.format)
        try:
            metadata = self.derive(original, decision, image)
        except ResizeFailure as exc:
            logger.warning(
                "Preview derivation failed for image_id=%s, publishing single level: %s",
                image.image_id,
                exc,
            )
            metadata = self.derive(original, Decision.SINGLE_LEVEL, image)
        self.persist(metadata)
        return metadata

    def get_metadata(self, image_id: str) -> PyramidMetadata:
        return self._metadata.get(image_id)

    def get_blob(self, path: str) -> bytes:
        """Bytes of a stored original or level; raises NotFound for unknown paths."""
        return self._blobs.get(path)


@lru_cache()
def get_pyramid_generator() -> PyramidGenerator:
    return PyramidGenerator(get_blob_store(), get_metadata_store())
