#!/usr/bin/env python
"""Print a CDN credential triple for a principal (operator debugging)."""
from __future__ import annotations

import argparse
import json

from imagegate.config import get_settings
from imagegate.services.access_tokens import AccessTokenIssuer, encode
from imagegate.services.signing import SigningKey


def main() -> None:
    parser = argparse.ArgumentParser(description="Issue imagegate CDN cookies")
    parser.add_argument("--principal", default="operator")
    parser.add_argument("--scope", default=None, help="Path prefix ending in '/' or a single path; default: all")
    parser.add_argument("--source_ip", default=None, help="Restrict the credential to a CIDR")
    parser.add_argument("--key_file", default=None, help="PEM private key; overrides CDN_PRIVATE_KEY(_PATH)")
    args = parser.parse_args()

    settings = get_settings()
    signing_key = SigningKey.from_settings(settings)
    if args.key_file:
        signing_key = SigningKey(settings.cdn_key_pair_id, path=args.key_file)

    issuer = AccessTokenIssuer(signing_key, settings.cdn_domain)
    token = issuer.issue(args.principal, args.scope, source_ip=args.source_ip)
    print("Policy:")
    print(json.dumps(json.loads(token.policy), indent=2))
    print("Cookies:")
    for name, value in encode(token):
        print(f"{name}={value}")


if __name__ == "__main__":
    main()
