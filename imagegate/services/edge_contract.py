"""Checks an edge must apply to a CDN credential before serving a path.

This mirrors what the CDN does with the three credential cookies, using only
the public key it was provisioned with. It is used to validate issued
credentials and to debug rejected requests; it performs no network calls.

Expiry rule: a credential is valid strictly before ``expires_at``; at or
after that second it is rejected.
"""
from __future__ import annotations

import binascii
import ipaddress
import re
import time
from typing import Any, Iterable, Mapping

from imagegate.exceptions import TokenRejected
from imagegate.models import AccessPolicy
from imagegate.services.access_tokens import (
    KEY_PAIR_ID_COOKIE,
    POLICY_COOKIE,
    SIGNATURE_COOKIE,
    safe_b64decode,
)
from imagegate.services.signing import verify_signature


def resource_pattern(resource: str) -> re.Pattern[str]:
    """Compile a policy resource; only ``*`` and ``?`` are wildcards."""
    parts = []
    for char in resource:
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.DOTALL)


def verify(
    credential: Mapping[str, str] | Iterable[tuple[str, str]],
    public_key: Any,
    url: str,
    *,
    expected_key_pair_id: str | None = None,
    client_ip: str | None = None,
    now: float | None = None,
) -> AccessPolicy:
    """Return the verified policy or raise TokenRejected with the reason."""
    pieces = dict(credential)
    try:
        policy_b64 = pieces[POLICY_COOKIE]
        signature_b64 = pieces[SIGNATURE_COOKIE]
        key_pair_id = pieces[KEY_PAIR_ID_COOKIE]
    except KeyError as exc:
        raise TokenRejected(f"missing {exc.args[0]}") from None

    if expected_key_pair_id is not None and key_pair_id != expected_key_pair_id:
        raise TokenRejected("unknown key pair id")

    try:
        policy_bytes = safe_b64decode(policy_b64)
        signature = safe_b64decode(signature_b64)
    except (binascii.Error, ValueError):
        raise TokenRejected("malformed encoding") from None

    if not verify_signature(public_key, policy_bytes, signature):
        raise TokenRejected("bad signature")

    try:
        policy = AccessPolicy.from_canonical(policy_bytes)
    except ValueError:
        raise TokenRejected("malformed policy") from None

    current = time.time() if now is None else now
    if current >= policy.expires_at:
        raise TokenRejected("expired")

    if not resource_pattern(policy.resource).fullmatch(url):
        raise TokenRejected("resource not covered by policy")

    if policy.source_ip is not None:
        try:
            allowed = client_ip is not None and ipaddress.ip_address(client_ip) in ipaddress.ip_network(policy.source_ip)
        except ValueError:
            allowed = False
        if not allowed:
            raise TokenRejected("source ip not allowed")

    return policy
