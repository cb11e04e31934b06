"""Upload, pyramid lookup and blob endpoints."""
from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, Response, status
from starlette.concurrency import run_in_threadpool

from imagegate.config import Settings, get_settings
from imagegate.exceptions import ImageGateError
from imagegate.models import Image
from imagegate.services.pyramid import PyramidGenerator, get_pyramid_generator
from imagegate.services.storage import content_type_for

router = APIRouter()
logger = logging.getLogger(__name__)

# Stored paths are never rewritten with different bytes.
IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000, immutable"


@router.post("/containers/{container_id}/images", status_code=status.HTTP_201_CREATED)
async def upload_image(
    container_id: str,
    request: Request,
    response: Response,
    background_tasks: BackgroundTasks,
    generator: PyramidGenerator = Depends(get_pyramid_generator),
    settings: Settings = Depends(get_settings),
):
    original = await request.body()
    if not original:
        raise HTTPException(status_code=400, detail="Empty upload")

    image = await run_in_threadpool(generator.ingest, container_id, original)

    if settings.pyramid_mode == "deferred":
        background_tasks.add_task(run_pyramid, generator, image, original)
        response.status_code = status.HTTP_202_ACCEPTED
        return {"image": image.model_dump(mode="json"), "pyramid": None}

    metadata = await run_in_threadpool(generator.generate, image, original)
    return {"image": image.model_dump(mode="json"), "pyramid": metadata.model_dump(mode="json")}


@router.get("/images/{image_id}/pyramid")
async def get_pyramid(image_id: str, generator: PyramidGenerator = Depends(get_pyramid_generator)):
    metadata = await run_in_threadpool(generator.get_metadata, image_id)
    return metadata.model_dump(mode="json")


@router.get("/blobs/{path:path}")
async def get_blob(path: str, generator: PyramidGenerator = Depends(get_pyramid_generator)):
    content = await run_in_threadpool(generator.get_blob, path)
    return Response(
        content=content,
        media_type=content_type_for(path),
        headers={"Cache-Control": IMMUTABLE_CACHE_CONTROL},
    )


def run_pyramid(generator: PyramidGenerator, image: Image, original: bytes) -> None:
    # Runs after the response; a failed run leaves no metadata and can simply be redelivered.
    try:
        generator.generate(image, original)
    except ImageGateError as exc:
        logger.exception("Deferred pyramid generation failed for image_id=%s: %s", image.image_id, exc)
