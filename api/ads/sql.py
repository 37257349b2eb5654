"""
SQL fragments and row decoding shared by the ad repository and the cursor
manager.
"""

from __future__ import annotations

import json
from typing import Any, Mapping

from .schemas import Ad

AD_COLUMNS = (
    "id, title, description, price, status, user_email, user_phone, "
    "created_at, updated_at, top_ad, images"
)


def select_ads(where: str = "") -> str:
    """
    Base SELECT over `ads` with an optional rendered WHERE fragment.

    No ORDER BY: row order is whatever Postgres returns for the plan.
    """
    sql = f"SELECT {AD_COLUMNS} FROM ads"
    if where:
        sql += f" {where}"
    return sql


def json_arg(value: Any) -> str:
    """
    asyncpg does not automatically encode Python values for json/jsonb
    parameters. We pass JSON as a string and cast to jsonb in SQL.
    """
    return json.dumps(value, ensure_ascii=True)


def _decode_images(raw: Any) -> list[str]:
    # jsonb comes back as text unless a codec is registered.
    if raw is None:
        return []
    if isinstance(raw, (bytes, str)):
        raw = json.loads(raw)
    if not isinstance(raw, list):
        raise ValueError(f"ads.images must be a JSON array, got {type(raw).__name__}")
    return [str(x) for x in raw]


def row_to_ad(row: Mapping[str, Any]) -> Ad:
    return Ad(
        id=int(row["id"]),
        title=str(row["title"]),
        description=str(row["description"]),
        price=row["price"],
        status=str(row["status"]),
        user_email=str(row["user_email"]),
        user_phone=str(row["user_phone"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        top_ad=bool(row["top_ad"]),
        images=_decode_images(row["images"]),
    )
