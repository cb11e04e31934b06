"""RSA-SHA256 signing key handle for CDN credentials.

The private key is handed to the issuer explicitly; it is loaded lazily from
PEM text or a PEM file the first time something is signed, and it never
appears in logs, reprs or error messages.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from jose import jwk
from jose.constants import ALGORITHMS
from jose.exceptions import JWKError

from imagegate.config import Settings
from imagegate.exceptions import SigningKeyUnavailable

logger = logging.getLogger(__name__)

SIGNATURE_ALGORITHM = ALGORITHMS.RS256  # RSASSA-PKCS1-v1_5 with SHA-256


class SigningKey:
    """Private signing key plus the id the edge uses to find the public half."""

    def __init__(self, key_pair_id: str | None, *, pem: str | None = None, path: str | Path | None = None) -> None:
        self.key_pair_id = key_pair_id
        self._pem = pem
        self._path = Path(path) if path is not None else None
        self._key: Any = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "SigningKey":
        return cls(
            settings.cdn_key_pair_id,
            pem=settings.cdn_private_key,
            path=settings.cdn_private_key_path,
        )

    def __repr__(self) -> str:
        return f"SigningKey(key_pair_id={self.key_pair_id!r}, material=<redacted>)"

    def _read_pem(self) -> str:
        if self._pem:
            return self._pem
        if self._path is not None:
            try:
                return self._path.read_text(encoding="ascii")
            except (OSError, UnicodeDecodeError) as exc:
                raise SigningKeyUnavailable(f"Cannot read signing key file {self._path}") from exc
        raise SigningKeyUnavailable("No signing key configured (CDN_PRIVATE_KEY or CDN_PRIVATE_KEY_PATH)")

    def load(self) -> Any:
        if self._key is not None:
            return self._key
        if not self.key_pair_id:
            raise SigningKeyUnavailable("No signing key pair id configured (CDN_KEY_PAIR_ID)")
        try:
            key = jwk.construct(self._read_pem(), SIGNATURE_ALGORITHM)
        except (JWKError, ValueError, TypeError):
            # The parser's message may quote key material; keep it out of the chain.
            raise SigningKeyUnavailable("Signing key material could not be parsed") from None
        if key.is_public():
            raise SigningKeyUnavailable("Signing key is a public key; a private key is required")
        self._key = key
        logger.info("Loaded signing key for key_pair_id=%s", self.key_pair_id)
        return key

    def sign(self, message: bytes) -> bytes:
        return self.load().sign(message)


def load_public_key(pem: str | bytes) -> Any:
    """Parse the public half provisioned to the edge."""
    if isinstance(pem, bytes):
        pem = pem.decode("ascii")
    return jwk.construct(pem, SIGNATURE_ALGORITHM)


def verify_signature(public_key: Any, message: bytes, signature: bytes) -> bool:
    return bool(public_key.verify(message, signature))
