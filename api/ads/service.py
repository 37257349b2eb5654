"""
Ad business logic.

This file sits between the FastAPI router and the repositories:
- parse filters and paging parameters
- write uploaded images, then the ad row
- map storage/cursor errors to HTTP errors
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from decimal import Decimal

from fastapi import HTTPException, UploadFile, status

from core import config
from core.db import PoolError, StorageError
from images.repository import ImageRepository, ImageStoreError

from . import filters, schemas
from .cursors import CursorCreationError, CursorError, CursorFetchError, check_fetch_count
from .repository import AdRepository

logger = logging.getLogger(__name__)

_BACKEND_ERRORS = (PoolError, StorageError, CursorError)

INT4_MIN = -(2**31)
INT4_MAX = 2**31 - 1

_AD_ID_RE = re.compile(r"^-?[0-9]+\Z")


@dataclass(frozen=True)
class ImageUpload:
    file_name: str
    mime_type: str
    data: bytes


def _server_error(action: str, exc: Exception) -> HTTPException:
    logger.error("%s_failed error=%r", action, exc)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Internal server error.",
    )


def _parse_filter(raw: dict | None) -> schemas.AdFilter:
    try:
        return filters.parse_filter(raw)
    except filters.FilterParseError as exc:
        raise HTTPException(
            status_code=422,
            detail=str(exc),
        ) from exc


def page_number(offset: int, per_page: int) -> int:
    """
    1-based page number for an offset. Derived, not stored.
    """
    if per_page <= 0:
        return 1
    return offset // per_page + 1


def parse_ad_id(raw: str) -> int:
    """
    Ad ids are int4 (SERIAL). Anything else is a client error, not a lookup.
    """
    if not _AD_ID_RE.match(raw or ""):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Ad id must be an integer.",
        )
    ad_id = int(raw)
    if not INT4_MIN <= ad_id <= INT4_MAX:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Ad id is out of range.",
        )
    return ad_id


async def list_ads(
    repo: AdRepository,
    payload: schemas.PaginatedRequest | None,
) -> schemas.PaginatedResponse:
    params = payload or schemas.PaginatedRequest()
    per_page = params.per_page if params.per_page is not None else config.default_per_page()
    offset = params.offset or 0
    ad_filter = _parse_filter(params.filters)

    try:
        items = await repo.get_page(offset, per_page, ad_filter)
    except _BACKEND_ERRORS as exc:
        raise _server_error("list_ads", exc) from exc

    return schemas.PaginatedResponse(page=page_number(offset, per_page), items=items)


async def get_ad(repo: AdRepository, raw_id: str) -> schemas.Ad:
    ad_id = parse_ad_id(raw_id)
    try:
        ad = await repo.get_by_id(ad_id)
    except _BACKEND_ERRORS as exc:
        raise _server_error("get_ad", exc) from exc

    if ad is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ad not found.")
    return ad


async def read_image_upload(upload: UploadFile) -> ImageUpload:
    """
    File name and content type are mandatory for every image part. A part
    without them fails the whole request instead of being skipped.
    """
    if not upload.filename:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Image part is missing a filename.",
        )
    if not upload.content_type:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Image '{upload.filename}' is missing a content type.",
        )
    data = await upload.read()
    return ImageUpload(file_name=upload.filename, mime_type=upload.content_type, data=data)


async def create_ad(
    repo: AdRepository,
    image_repo: ImageRepository,
    *,
    title: str,
    description: str,
    price: Decimal,
    user_email: str,
    user_phone: str,
    top_ad: bool,
    images: list[UploadFile],
) -> schemas.Ad:
    content = schemas.AdContent(
        title=title,
        description=description,
        price=price,
        user_email=user_email,
        user_phone=user_phone,
        top_ad=top_ad,
    )

    # Validate every part before writing anything to disk.
    uploads = [await read_image_upload(upload) for upload in images]

    image_ids: list[str] = []
    for upload in uploads:
        try:
            image_id = await image_repo.create_image(upload.file_name, upload.data, upload.mime_type)
        except ImageStoreError as exc:
            raise _server_error("create_image", exc) from exc
        image_ids.append(image_id)

    try:
        ad = await repo.create(content, image_ids)
    except _BACKEND_ERRORS as exc:
        if image_ids:
            # TODO: hand these to an orphan-blob reconciliation job once one exists.
            logger.warning("ad_insert_failed orphaned_images=%s", ",".join(image_ids))
        raise _server_error("create_ad", exc) from exc

    logger.info("ad_created id=%s images=%s", ad.id, len(image_ids))
    return ad


async def open_cursor(
    repo: AdRepository,
    payload: schemas.CursorRequest | None,
) -> schemas.CursorResponse:
    ad_filter = _parse_filter(payload.filters if payload is not None else None)
    try:
        name = await repo.new_cursor(ad_filter)
    except CursorCreationError as exc:
        raise _server_error("new_cursor", exc) from exc
    return schemas.CursorResponse(cursor=name)


async def fetch_cursor(repo: AdRepository, name: str, count: int) -> schemas.CursorResponse:
    try:
        check_fetch_count(count)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    try:
        items = await repo.fetch_from_cursor(name, count)
    except CursorFetchError as exc:
        # Covers both unknown names and a lost session; the caller has to
        # open a new cursor either way.
        logger.info("cursor_fetch_failed name=%s error=%s", name, exc)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cursor not found.") from exc
    except ValueError as exc:
        # Count was checked above, so this is a row that failed to decode.
        raise _server_error("fetch_cursor", exc) from exc
    return schemas.CursorResponse(cursor=name, items=items)


async def close_cursor(repo: AdRepository, name: str) -> None:
    try:
        closed = await repo.close_cursor(name)
    except CursorError as exc:
        raise _server_error("close_cursor", exc) from exc
    if not closed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cursor not found.")
