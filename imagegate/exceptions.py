"""Error taxonomy shared by the pyramid pipeline, the stores and the issuer."""
from __future__ import annotations


class ImageGateError(Exception):
    """Base class for every error raised by imagegate."""


class UnsupportedFormat(ImageGateError):
    """The uploaded bytes cannot be decoded as an image. Not retried."""


class ResizeFailure(ImageGateError):
    """Resampling or re-encoding could not produce a valid preview."""


class PersistFailure(ImageGateError):
    """A store write failed while publishing a pyramid; nothing was published."""


class SigningKeyUnavailable(ImageGateError):
    """The issuer could not load its signing key material."""


class StoreUnavailable(ImageGateError):
    """A blob or metadata store rejected or could not complete a write."""


class NotFound(ImageGateError):
    """The requested blob or metadata record does not exist."""


class TokenRejected(ImageGateError):
    """A credential failed one of the edge verification checks."""

    def __init__(self, reason: str):
        super().__init__(f"Token rejected: {reason}")
        self.reason = reason
