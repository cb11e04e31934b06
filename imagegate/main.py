from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from imagegate.config import get_settings
from imagegate.exceptions import (
    NotFound,
    PersistFailure,
    SigningKeyUnavailable,
    StoreUnavailable,
    UnsupportedFormat,
)
from imagegate.handlers import access_handler, images_handler
from imagegate.logging_setup import setup_logging

settings = get_settings()
setup_logging(settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="imagegate API")

# Credentialed requests need the caller's origin echoed back, never "*".
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin for origin in settings.cors_origins if origin != "*"],
    allow_origin_regex=".*" if "*" in settings.cors_origins else None,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(images_handler.router)
app.include_router(access_handler.router)


@app.exception_handler(UnsupportedFormat)
async def unsupported_format_handler(request: Request, exc: UnsupportedFormat):
    return JSONResponse(status_code=415, content={"error": str(exc)})


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"error": "Not found"})


@app.exception_handler(PersistFailure)
@app.exception_handler(StoreUnavailable)
async def store_failure_handler(request: Request, exc: Exception):
    logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"error": "Storage temporarily unavailable"})


@app.exception_handler(SigningKeyUnavailable)
async def signing_key_handler(request: Request, exc: SigningKeyUnavailable):
    logger.error("Credential issuance failed: %s", exc)
    return JSONResponse(status_code=500, content={"error": "Credential issuance unavailable"})


@app.get("/healthz")
async def healthz():
    return {"status": "ok"}
