from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from ads import router as ads_router
from ads.cursors import CursorFetchError, check_fetch_count, new_cursor_name
from ads.repository import AdNotFoundError
from ads.schemas import Ad, AdContent, AdFilter
from images import router as images_router
from images.repository import Image, ImageNotFoundError


def ad_row(ad_id: int, **overrides) -> dict:
    row = {
        "id": ad_id,
        "title": "Test Ad",
        "description": "Test Description",
        "price": Decimal("100.00"),
        "status": "active",
        "user_email": "test@test.com",
        "user_phone": "1234567890",
        "created_at": datetime(2024, 12, 6, 12, 0, 0),
        "updated_at": datetime(2024, 12, 6, 12, 0, 0),
        "top_ad": False,
        "images": "[]",
    }
    row.update(overrides)
    return row


def _matches(ad: Ad, f: AdFilter) -> bool:
    if f.title_contains is not None and f.title_contains.lower() not in ad.title.lower():
        return False
    if f.description_contains is not None and f.description_contains.lower() not in ad.description.lower():
        return False
    if f.price_lt is not None and not ad.price < f.price_lt:
        return False
    if f.price_gt is not None and not ad.price > f.price_gt:
        return False
    if f.updated_at_lt is not None and not ad.updated_at < f.updated_at_lt:
        return False
    if f.updated_at_gt is not None and not ad.updated_at > f.updated_at_gt:
        return False
    return True


class InMemoryAdRepository:
    def __init__(self) -> None:
        self.ads: dict[int, Ad] = {}
        self.cursors: dict[str, list[Ad]] = {}
        self._next_id = 1
        self.fail_with: Exception | None = None

    def _maybe_fail(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    async def get_by_id(self, ad_id: int) -> Ad | None:
        self._maybe_fail()
        return self.ads.get(ad_id)

    async def get_page(self, offset: int, per_page: int, ad_filter: AdFilter) -> list[Ad]:
        self._maybe_fail()
        matching = [ad for ad in self.ads.values() if _matches(ad, ad_filter)]
        return matching[offset : offset + per_page]

    async def create(self, content: AdContent, image_ids: list[str]) -> Ad:
        self._maybe_fail()
        now = datetime(2024, 12, 6, 12, 0, 0)
        ad = Ad(
            id=self._next_id,
            status="active",
            created_at=now,
            updated_at=now,
            images=list(image_ids),
            **content.model_dump(),
        )
        self.ads[ad.id] = ad
        self._next_id += 1
        return ad

    async def update(self, ad_id: int, ad: Ad) -> Ad:
        if ad_id not in self.ads:
            raise AdNotFoundError(ad_id)
        self.ads[ad_id] = ad.model_copy(update={"id": ad_id})
        return self.ads[ad_id]

    async def delete(self, ad_id: int) -> int:
        return 1 if self.ads.pop(ad_id, None) is not None else 0

    async def new_cursor(self, ad_filter: AdFilter) -> str:
        self._maybe_fail()
        name = new_cursor_name()
        self.cursors[name] = [ad for ad in self.ads.values() if _matches(ad, ad_filter)]
        return name

    async def fetch_from_cursor(self, name: str, count: int) -> list[Ad]:
        check_fetch_count(count)
        if name not in self.cursors:
            raise CursorFetchError(name)
        batch = self.cursors[name][:count]
        self.cursors[name] = self.cursors[name][count:]
        return batch

    async def close_cursor(self, name: str) -> bool:
        return self.cursors.pop(name, None) is not None


class InMemoryImageRepository:
    def __init__(self) -> None:
        self.images: dict[str, Image] = {}

    async def get_image(self, image_id: str) -> Image:
        try:
            return self.images[image_id]
        except KeyError as exc:
            raise ImageNotFoundError(image_id) from exc

    async def create_image(self, file_name: str, data: bytes, mime_type: str) -> str:
        image_id = str(uuid.uuid4())
        self.images[image_id] = Image(id=image_id, file_name=file_name, mime_type=mime_type, data=data)
        return image_id

    async def delete_image(self, image_id: str) -> None:
        if self.images.pop(image_id, None) is None:
            raise ImageNotFoundError(image_id)


@pytest.fixture
def ad_repo() -> InMemoryAdRepository:
    return InMemoryAdRepository()


@pytest.fixture
def image_repo() -> InMemoryImageRepository:
    return InMemoryImageRepository()


@pytest.fixture
def client(ad_repo, image_repo) -> TestClient:
    app = FastAPI()
    app.include_router(ads_router.router)
    app.include_router(images_router.router)
    app.state.ad_repository = ad_repo
    app.state.image_repository = image_repo
    return TestClient(app)
