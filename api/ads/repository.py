"""
Ad persistence.
This module is where ad-related SQL lives.

`AdRepository` is the contract the service layer depends on; tests swap in an
in-memory implementation. `PostgresAdRepository` borrows a pooled connection
per call and never holds one across calls.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Protocol

from core import db
from core.db import Database

from . import filters, sql
from .cursors import CursorManager
from .schemas import Ad, AdContent, AdFilter


class AdNotFoundError(LookupError):
    pass


def _utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class AdRepository(Protocol):
    async def get_by_id(self, ad_id: int) -> Ad | None: ...

    async def get_page(self, offset: int, per_page: int, ad_filter: AdFilter) -> list[Ad]: ...

    async def create(self, content: AdContent, image_ids: list[str]) -> Ad: ...

    async def update(self, ad_id: int, ad: Ad) -> Ad: ...

    async def delete(self, ad_id: int) -> int: ...

    async def new_cursor(self, ad_filter: AdFilter) -> str: ...

    async def fetch_from_cursor(self, name: str, count: int) -> list[Ad]: ...

    async def close_cursor(self, name: str) -> bool: ...


class PostgresAdRepository:
    def __init__(self, database: Database, cursors: CursorManager) -> None:
        self._db = database
        self._cursors = cursors

    async def get_by_id(self, ad_id: int) -> Ad | None:
        async with self._db.read() as conn:
            row = await db.fetch_one(
                conn,
                sql.select_ads("WHERE id = $1"),
                ad_id,
            )
        return sql.row_to_ad(row) if row is not None else None

    async def get_page(self, offset: int, per_page: int, ad_filter: AdFilter) -> list[Ad]:
        """
        One page of ads matching the filter.

        Offsets are not stable under concurrent writes; rows can shift between
        pages.
        """
        if per_page <= 0:
            return []

        where, args = filters.render_where(filters.build_clauses(ad_filter))
        n = len(args)
        query = f"{sql.select_ads(where)} OFFSET ${n + 1} LIMIT ${n + 2}"

        async with self._db.read() as conn:
            rows = await db.fetch_all(conn, query, *args, offset, per_page)
        return [sql.row_to_ad(row) for row in rows]

    async def create(self, content: AdContent, image_ids: list[str]) -> Ad:
        now = _utc_now_naive()
        async with self._db.write() as conn:
            row = await db.fetch_one(
                conn,
                f"""
                INSERT INTO ads (
                  title, description, price, status, user_email, user_phone,
                  top_ad, images, created_at, updated_at
                )
                VALUES ($1, $2, $3, 'active', $4, $5, $6, $7::jsonb, $8, $8)
                RETURNING {sql.AD_COLUMNS}
                """,
                content.title,
                content.description,
                content.price,
                content.user_email,
                content.user_phone,
                content.top_ad,
                sql.json_arg(list(image_ids)),
                now,
            )
        if row is None:
            raise db.StorageError("Failed to insert ad.")
        return sql.row_to_ad(row)

    async def update(self, ad_id: int, ad: Ad) -> Ad:
        """
        Replace every settable column of the row with `ad`'s values.
        """
        async with self._db.write() as conn:
            row = await db.fetch_one(
                conn,
                f"""
                UPDATE ads
                SET title = $2,
                    description = $3,
                    price = $4,
                    status = $5,
                    user_email = $6,
                    user_phone = $7,
                    created_at = $8,
                    updated_at = $9,
                    top_ad = $10,
                    images = $11::jsonb
                WHERE id = $1
                RETURNING {sql.AD_COLUMNS}
                """,
                ad_id,
                ad.title,
                ad.description,
                ad.price,
                ad.status,
                ad.user_email,
                ad.user_phone,
                ad.created_at,
                ad.updated_at,
                ad.top_ad,
                sql.json_arg(list(ad.images)),
            )
        if row is None:
            raise AdNotFoundError(f"Ad {ad_id} not found.")
        return sql.row_to_ad(row)

    async def delete(self, ad_id: int) -> int:
        async with self._db.write() as conn:
            status = await db.execute(conn, "DELETE FROM ads WHERE id = $1", ad_id)
        return db.affected_rows(status)

    async def new_cursor(self, ad_filter: AdFilter) -> str:
        return await self._cursors.new_cursor(ad_filter)

    async def fetch_from_cursor(self, name: str, count: int) -> list[Ad]:
        return await self._cursors.fetch_from_cursor(name, count)

    async def close_cursor(self, name: str) -> bool:
        return await self._cursors.close_cursor(name)
