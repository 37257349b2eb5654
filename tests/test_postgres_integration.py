"""
Runs against a real Postgres with the `ads` migration applied.

    TEST_DATABASE_URL=postgres://... pytest tests/test_postgres_integration.py

Each test works inside rows it created and deletes them afterwards.
"""

import os
import uuid
from decimal import Decimal

import pytest
import pytest_asyncio

from ads.cursors import CursorFetchError, CursorManager
from ads.repository import AdNotFoundError, PostgresAdRepository
from ads.schemas import AdContent, AdFilter
from core.db import Database

DSN = os.environ.get("TEST_DATABASE_URL", "").strip()

pytestmark = pytest.mark.skipif(not DSN, reason="TEST_DATABASE_URL is not set")


@pytest_asyncio.fixture
async def repo():
    database = Database(DSN, min_size=1, max_size=3)
    await database.open()
    cursors = CursorManager(database)
    repository = PostgresAdRepository(database, cursors)
    created: list[int] = []
    repository.created = created
    try:
        yield repository
    finally:
        for ad_id in created:
            await repository.delete(ad_id)
        await cursors.close()
        await database.close()


def _content(title: str, **overrides) -> AdContent:
    data = {
        "title": title,
        "description": "Test Description",
        "price": Decimal("100.00"),
        "user_email": "test@test.com",
        "user_phone": "1234567890",
        "top_ad": False,
    }
    data.update(overrides)
    return AdContent(**data)


async def _create(repo, title, image_ids=(), **overrides):
    ad = await repo.create(_content(title, **overrides), list(image_ids))
    repo.created.append(ad.id)
    return ad


@pytest.mark.asyncio
async def test_create_then_get_round_trips(repo):
    images = [str(uuid.uuid4()) for _ in range(3)]
    ad = await _create(repo, "Round trip", images, price=Decimal("12.34"), top_ad=True)

    fetched = await repo.get_by_id(ad.id)

    assert fetched is not None
    assert fetched.title == "Round trip"
    assert fetched.description == "Test Description"
    assert fetched.price == Decimal("12.34")
    assert fetched.user_email == "test@test.com"
    assert fetched.user_phone == "1234567890"
    assert fetched.top_ad is True
    assert fetched.status == "active"
    assert fetched.images == images
    assert fetched.created_at == fetched.updated_at


@pytest.mark.asyncio
async def test_get_missing_returns_none(repo):
    assert await repo.get_by_id(-1) is None


@pytest.mark.asyncio
async def test_delete_twice(repo):
    ad = await repo.create(_content("Delete me"), [])
    assert await repo.delete(ad.id) == 1
    assert await repo.delete(ad.id) == 0


@pytest.mark.asyncio
async def test_update_replaces_row(repo):
    ad = await _create(repo, "Before")
    changed = ad.model_copy(update={"title": "After", "status": "sold", "images": ["x"]})

    updated = await repo.update(ad.id, changed)

    assert updated.id == ad.id
    assert updated.title == "After"
    assert updated.status == "sold"
    assert updated.images == ["x"]


@pytest.mark.asyncio
async def test_update_missing_row(repo):
    ad = await _create(repo, "Exists")
    with pytest.raises(AdNotFoundError):
        await repo.update(-1, ad)


@pytest.mark.asyncio
async def test_cursor_batches_cover_all_matches(repo):
    marker = uuid.uuid4().hex[:8]
    for _ in range(10):
        await _create(repo, f"Test Ad {marker}")

    name = await repo.new_cursor(AdFilter(title_contains=f"TEST AD {marker.upper()}"))

    total = 0
    while True:
        batch = await repo.fetch_from_cursor(name, 2)
        total += len(batch)
        if len(batch) < 2:
            break

    assert total == 10
    assert await repo.fetch_from_cursor(name, 0) == []
    assert await repo.close_cursor(name) is True
    with pytest.raises(CursorFetchError):
        await repo.fetch_from_cursor(name, 2)


@pytest.mark.asyncio
async def test_page_and_cursor_return_same_ids(repo):
    marker = uuid.uuid4().hex[:8]
    for i in range(6):
        await _create(repo, f"Lamp {marker}", price=Decimal(10 * (i + 1)))

    f = AdFilter(title_contains=marker, price_gt=Decimal("15"), price_lt=Decimal("55"))

    page_ids = {ad.id for ad in await repo.get_page(0, 100, f)}
    name = await repo.new_cursor(f)
    cursor_ids = {ad.id for ad in await repo.fetch_from_cursor(name, 100)}

    assert page_ids == cursor_ids
    assert len(page_ids) == 4


@pytest.mark.asyncio
async def test_paging_boundaries(repo):
    marker = uuid.uuid4().hex[:8]
    for _ in range(3):
        await _create(repo, f"Desk {marker}")
    f = AdFilter(title_contains=marker)

    assert await repo.get_page(0, 0, f) == []
    assert len(await repo.get_page(0, 2, f)) == 2
    assert len(await repo.get_page(2, 2, f)) == 1
    assert await repo.get_page(10, 2, f) == []
