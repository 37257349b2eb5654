"""
FastAPI router for ad endpoints.
"""

from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Body, Depends, File, Form, Query, Response, UploadFile, status
from fastapi.responses import PlainTextResponse

from core import dependencies
from images.repository import ImageRepository

from . import schemas, service
from .cursors import MAX_FETCH_COUNT
from .repository import AdRepository

router = APIRouter()


@router.get("/ads")
async def list_ads(
    payload: schemas.PaginatedRequest | None = Body(default=None),
    repo: AdRepository = Depends(dependencies.get_ad_repository),
) -> schemas.PaginatedResponse:
    """
    Offset-paged listing. The optional JSON body carries `per_page`,
    `offset` and `filters`.
    """
    return await service.list_ads(repo, payload)


@router.post("/ads/cursors", status_code=status.HTTP_201_CREATED)
async def open_cursor(
    payload: schemas.CursorRequest | None = Body(default=None),
    repo: AdRepository = Depends(dependencies.get_ad_repository),
) -> schemas.CursorResponse:
    return await service.open_cursor(repo, payload)


@router.get("/ads/cursors/{name}")
async def fetch_cursor(
    name: str,
    count: int = Query(10, ge=0, le=MAX_FETCH_COUNT),
    repo: AdRepository = Depends(dependencies.get_ad_repository),
) -> schemas.CursorResponse:
    return await service.fetch_cursor(repo, name, count)


@router.delete("/ads/cursors/{name}", status_code=status.HTTP_204_NO_CONTENT)
async def close_cursor(
    name: str,
    repo: AdRepository = Depends(dependencies.get_ad_repository),
) -> Response:
    await service.close_cursor(repo, name)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/ads/{ad_id}")
async def get_ad(
    ad_id: str,
    repo: AdRepository = Depends(dependencies.get_ad_repository),
) -> schemas.Ad:
    return await service.get_ad(repo, ad_id)


@router.post("/ads", response_class=PlainTextResponse)
async def create_ad(
    title: str = Form(...),
    description: str = Form(...),
    price: Decimal = Form(...),
    user_email: str = Form(...),
    user_phone: str = Form(...),
    top_ad: bool = Form(False),
    images: list[UploadFile] | None = File(default=None),
    repo: AdRepository = Depends(dependencies.get_ad_repository),
    image_repo: ImageRepository = Depends(dependencies.get_image_repository),
) -> str:
    """
    Create an ad from a multipart form. Returns the new id as plain text.
    """
    ad = await service.create_ad(
        repo,
        image_repo,
        title=title,
        description=description,
        price=price,
        user_email=user_email,
        user_phone=user_phone,
        top_ad=top_ad,
        images=images or [],
    )
    return str(ad.id)


# Stubs: routed, but they do not touch storage yet.
@router.put("/ads/{ad_id}")
async def update_ad(ad_id: str) -> Response:
    return Response(status_code=status.HTTP_200_OK)


@router.delete("/ads/{ad_id}")
async def delete_ad(ad_id: str) -> Response:
    return Response(status_code=status.HTTP_204_NO_CONTENT)
