"""
Image API endpoints.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response

from core import dependencies

from .repository import ImageRepository, ImageStoreError

router = APIRouter()

logger = logging.getLogger(__name__)


@router.get("/images/{image_id}")
async def get_image(
    image_id: str,
    images: ImageRepository = Depends(dependencies.get_image_repository),
) -> Response:
    """
    Raw image bytes. Any read fault (including a missing image) is a 500.
    """
    try:
        image = await images.get_image(image_id)
    except ImageStoreError as exc:
        logger.warning("image_read_failed image_id=%s error=%s", image_id, exc)
        raise HTTPException(status_code=500, detail="Could not read image.") from exc
    return Response(content=image.data, media_type=image.mime_type)
