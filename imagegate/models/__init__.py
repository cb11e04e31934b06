from .access import AccessPolicy, SignedToken
from .image import Decision, Image, ImageFormat, ImageLevel, LevelPurpose, PyramidMetadata

__all__ = [
    "AccessPolicy",
    "SignedToken",
    "Decision",
    "Image",
    "ImageFormat",
    "ImageLevel",
    "LevelPurpose",
    "PyramidMetadata",
]
