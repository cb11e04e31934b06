"""Issuance of CDN credential cookies for authenticated sessions."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Header, HTTPException, Response
from starlette.concurrency import run_in_threadpool

from imagegate.config import Settings, get_settings
from imagegate.services.access_tokens import (
    AccessTokenIssuer,
    cookie_domain_for,
    encode,
    get_access_token_issuer,
)

router = APIRouter()

# The API gateway validates the bearer token before the request gets here and
# forwards the subject; cookies are still useful without it.
FALLBACK_PRINCIPAL = "authenticated-user"


@router.post("/auth/cdn-cookies")
async def issue_cdn_cookies(
    response: Response,
    authorization: str | None = Header(None),
    x_user_id: str | None = Header(None, alias="X-User-Id"),
    origin: str | None = Header(None),
    issuer: AccessTokenIssuer = Depends(get_access_token_issuer),
    settings: Settings = Depends(get_settings),
):
    if authorization is None:
        raise HTTPException(status_code=401, detail="Missing Authorization header")

    user_id = x_user_id or FALLBACK_PRINCIPAL
    token = await run_in_threadpool(issuer.issue, user_id)
    domain = cookie_domain_for(origin, settings.cdn_cookie_domain)

    for name, value in encode(token):
        response.set_cookie(
            name,
            value,
            max_age=issuer.lifetime_seconds,
            path="/",
            domain=domain,
            secure=True,
            httponly=True,
            samesite="none",
        )

    return {
        "user_id": user_id,
        "cookies_set": True,
        "expires_in_seconds": issuer.lifetime_seconds,
    }
