from __future__ import annotations

import ipaddress
import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AccessPolicy(BaseModel):
    """What a signed credential authorizes: a resource pattern until an instant.

    ``resource`` is a full URL and may end with ``*`` to cover a prefix.
    ``expires_at`` is whole epoch seconds; the credential is valid strictly
    before it.
    """

    model_config = ConfigDict(frozen=True)

    resource: str
    expires_at: int = Field(..., ge=0)
    source_ip: str | None = None  # CIDR, e.g. "203.0.113.0/24"

    @field_validator("source_ip")
    @classmethod
    def _normalise_cidr(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return str(ipaddress.ip_network(value, strict=False))

    def statement(self) -> dict[str, Any]:
        condition: dict[str, Any] = {"DateLessThan": {"AWS:EpochTime": self.expires_at}}
        if self.source_ip is not None:
            condition["IpAddress"] = {"AWS:SourceIp": self.source_ip}
        return {"Statement": [{"Resource": self.resource, "Condition": condition}]}

    def canonical_json(self) -> str:
        """Byte-stable JSON: sorted keys, no whitespace, ASCII only."""
        return json.dumps(self.statement(), sort_keys=True, separators=(",", ":"), ensure_ascii=True)

    def canonical_bytes(self) -> bytes:
        return self.canonical_json().encode("ascii")

    @classmethod
    def from_canonical(cls, policy_json: str | bytes) -> "AccessPolicy":
        doc = json.loads(policy_json)
        try:
            (stmt,) = doc["Statement"]
            condition = stmt["Condition"]
            return cls(
                resource=stmt["Resource"],
                expires_at=condition["DateLessThan"]["AWS:EpochTime"],
                source_ip=condition.get("IpAddress", {}).get("AWS:SourceIp"),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Malformed policy document: {exc}") from exc


class SignedToken(BaseModel):
    """Policy document, its signature and the id of the key that signed it."""

    model_config = ConfigDict(frozen=True)

    policy: str
    signature: bytes = Field(repr=False)
    key_pair_id: str
    expires_at: int
