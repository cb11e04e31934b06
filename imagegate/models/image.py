from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ImageFormat(str, Enum):
    LOSSLESS = "lossless"
    LOSSY = "lossy"
    OTHER = "other"


class LevelPurpose(str, Enum):
    FULL = "full"
    PREVIEW = "preview"


class Decision(str, Enum):
    SINGLE_LEVEL = "single-level"
    MULTI_LEVEL = "multi-level"


class Image(BaseModel):
    """One logical picture, owned by a container (task/block)."""

    model_config = ConfigDict(frozen=True)

    image_id: str
    container_id: str
    byte_size: int = Field(..., ge=1)
    width: int = Field(..., ge=1)
    height: int = Field(..., ge=1)
    format: ImageFormat
    extension: str  # e.g. "png", from the decoder's format name
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ImageLevel(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: int = Field(..., ge=1)
    height: int = Field(..., ge=1)
    path: str
    byte_size: int = Field(..., ge=1)
    purpose: LevelPurpose
    # Encoded bytes travel with the level in-process only; the metadata store never sees them.
    content: bytes | None = Field(default=None, exclude=True, repr=False)


class PyramidMetadata(BaseModel):
    """All levels of one image, widest (the ``full`` level) first.

    Written once at ingest and only ever replaced whole.
    """

    model_config = ConfigDict(frozen=True)

    image_id: str
    original_width: int = Field(..., ge=1)
    original_height: int = Field(..., ge=1)
    original_byte_size: int = Field(..., ge=1)
    format: ImageFormat
    levels: list[ImageLevel] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _check_levels(self) -> "PyramidMetadata":
        full = [lvl for lvl in self.levels if lvl.purpose is LevelPurpose.FULL]
        if len(full) != 1:
            raise ValueError(f"expected exactly one full level, got {len(full)}")
        if self.levels[0].purpose is not LevelPurpose.FULL:
            raise ValueError("full level must come first")
        widths = [lvl.width for lvl in self.levels]
        if any(a <= b for a, b in zip(widths, widths[1:])):
            raise ValueError(f"level widths must be strictly descending, got {widths}")
        for lvl in self.levels[1:]:
            if lvl.purpose is LevelPurpose.PREVIEW and lvl.width != full[0].width // 2:
                raise ValueError(
                    f"preview width {lvl.width} is not half of full width {full[0].width}"
                )
        return self

    @property
    def full(self) -> ImageLevel:
        return self.levels[0]

    @property
    def decision(self) -> Decision:
        return Decision.SINGLE_LEVEL if len(self.levels) == 1 else Decision.MULTI_LEVEL
