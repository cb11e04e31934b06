"""CDN access credentials.

A credential is a CloudFront-style custom policy, its RSA-SHA256 signature
and the id of the signing key pair. The edge checks all three on every fetch
without calling back to this service, so issuance is stateless: nothing is
stored and every call builds a fresh policy.

Wire format (what the edge reads, one cookie per piece):

    CloudFront-Policy       base64(canonical policy JSON), CloudFront-safe alphabet
    CloudFront-Signature    base64(signature), CloudFront-safe alphabet
    CloudFront-Key-Pair-Id  key pair id as provisioned on the edge
"""
from __future__ import annotations

import base64
import logging
import time
from datetime import timedelta
from functools import lru_cache
from urllib.parse import urlsplit

from imagegate.config import get_settings
from imagegate.models import AccessPolicy, SignedToken
from imagegate.services.signing import SigningKey

logger = logging.getLogger(__name__)

TOKEN_LIFETIME = timedelta(hours=12)

POLICY_COOKIE = "CloudFront-Policy"
SIGNATURE_COOKIE = "CloudFront-Signature"
KEY_PAIR_ID_COOKIE = "CloudFront-Key-Pair-Id"

# CloudFront replaces the three characters of standard base64 that are unsafe in cookies and URLs.
_TO_SAFE = str.maketrans("+=/", "-_~")
_FROM_SAFE = str.maketrans("-_~", "+=/")


def safe_b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii").translate(_TO_SAFE)


def safe_b64decode(value: str) -> bytes:
    return base64.b64decode(value.translate(_FROM_SAFE), validate=True)


class AccessTokenIssuer:
    """Issues signed, time-bounded credentials for a CDN distribution."""

    def __init__(self, signing_key: SigningKey, cdn_domain: str) -> None:
        self._signing_key = signing_key
        self._cdn_domain = cdn_domain.strip("/")

    @property
    def lifetime_seconds(self) -> int:
        return int(TOKEN_LIFETIME.total_seconds())

    def resource_for(self, scope: str | None = None) -> str:
        """Map a scope to a policy resource.

        ``None`` or ``"*"`` covers the whole distribution, a scope ending in
        ``/`` covers everything below that prefix, anything else is one path.
        """
        base = f"https://{self._cdn_domain}/"
        if scope is None or scope in ("", "*", "/"):
            return base + "*"
        scope = scope.lstrip("/")
        if scope.endswith("/"):
            return base + scope + "*"
        return base + scope

    def build_policy(
        self,
        scope: str | None = None,
        *,
        source_ip: str | None = None,
        now: float | None = None,
    ) -> AccessPolicy:
        issued_at = int(time.time() if now is None else now)
        return AccessPolicy(
            resource=self.resource_for(scope),
            expires_at=issued_at + self.lifetime_seconds,
            source_ip=source_ip,
        )

    def sign(self, canonical: bytes) -> bytes:
        return self._signing_key.sign(canonical)

    def issue(
        self,
        principal: str,
        scope: str | None = None,
        *,
        source_ip: str | None = None,
        now: float | None = None,
    ) -> SignedToken:
        """Build, canonicalise and sign a policy for ``principal``.

        Raises SigningKeyUnavailable before anything is returned.
        """
        policy = self.build_policy(scope, source_ip=source_ip, now=now)
        canonical = policy.canonical_json()
        signature = self.sign(canonical.encode("ascii"))
        token = SignedToken(
            policy=canonical,
            signature=signature,
            key_pair_id=self._signing_key.key_pair_id,
            expires_at=policy.expires_at,
        )
        logger.info(
            "Issued CDN credential principal=%s resource=%s expires_at=%d",
            principal,
            policy.resource,
            policy.expires_at,
            extra={"principal": principal, "key_pair_id": token.key_pair_id},
        )
        return token


def encode(token: SignedToken) -> list[tuple[str, str]]:
    """Three name/value pairs, each safe to drop into a cookie or query string."""
    return [
        (POLICY_COOKIE, safe_b64encode(token.policy.encode("ascii"))),
        (SIGNATURE_COOKIE, safe_b64encode(token.signature)),
        (KEY_PAIR_ID_COOKIE, token.key_pair_id),
    ]


def cookie_domain_for(origin: str | None, configured: str | None = None) -> str | None:
    """Pick the Domain attribute for the credential cookies.

    A configured domain wins; otherwise the host of the request Origin is
    used, except for localhost where browsers reject an explicit domain.
    """
    if configured:
        return configured
    if not origin:
        return None
    host = urlsplit(origin if "//" in origin else f"//{origin}").hostname
    if not host or host == "localhost":
        return None
    return host


@lru_cache()
def get_access_token_issuer() -> AccessTokenIssuer:
    settings = get_settings()
    return AccessTokenIssuer(SigningKey.from_settings(settings), settings.cdn_domain)
