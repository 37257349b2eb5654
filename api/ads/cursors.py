"""
Named server-side cursors over filtered ad queries.

Cursors are declared `WITH HOLD`, so they outlive the implicit transaction
that created them, but they are still bound to the Postgres session. Pooled
connections are reset on release (asyncpg issues `CLOSE ALL`), so every cursor
lives on one dedicated session connection owned by `CursorManager`.
Statements on that session are serialized with a lock.

The cursor name is the only handle. Anyone holding it can fetch from it.

Cursors are never left to accumulate: callers can close them explicitly and a
background sweep closes cursors that have been idle longer than the TTL.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
import uuid
from typing import Callable

import asyncpg

from core.db import Database, PoolError

from . import filters, sql
from .schemas import Ad, AdFilter

logger = logging.getLogger(__name__)

MAX_FETCH_COUNT = 255

_CURSOR_NAME_RE = re.compile(r"^c_[0-9a-f]{10}$")

_SESSION_ERRORS = (PoolError, asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


class CursorError(RuntimeError):
    pass


class CursorCreationError(CursorError):
    pass


class CursorFetchError(CursorError):
    pass


def new_cursor_name() -> str:
    # Identifiers must not start with a digit, hence the prefix.
    return "c_" + uuid.uuid4().hex[:10]


def is_valid_cursor_name(name: str) -> bool:
    return bool(_CURSOR_NAME_RE.match(name or ""))


def check_fetch_count(count: int) -> int:
    if isinstance(count, bool) or not isinstance(count, int):
        raise ValueError("count must be an integer.")
    if count < 0 or count > MAX_FETCH_COUNT:
        raise ValueError(f"count must be between 0 and {MAX_FETCH_COUNT}.")
    return count


class CursorManager:
    def __init__(
        self,
        db: Database,
        *,
        idle_ttl_s: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._db = db
        self.idle_ttl_s = idle_ttl_s
        self._clock = clock
        self._session: asyncpg.Connection | None = None
        self._lock = asyncio.Lock()
        # cursor name -> last time it was declared or fetched from
        self._last_used: dict[str, float] = {}
        self._sweeper: asyncio.Task | None = None

    def open_cursors(self) -> list[str]:
        return sorted(self._last_used)

    async def _connection(self) -> asyncpg.Connection:
        # Caller holds self._lock.
        if self._session is not None and not self._session.is_closed():
            return self._session
        if self._session is not None:
            # The old session is gone and took its cursors with it.
            logger.warning("cursor_session_lost dropped=%s", len(self._last_used))
            self._last_used.clear()
        self._session = await self._db.connect_session()
        return self._session

    async def new_cursor(self, ad_filter: AdFilter) -> str:
        clauses = filters.build_clauses(ad_filter)
        where, args = filters.render_where(clauses)
        name = new_cursor_name()
        statement = f"DECLARE {name} CURSOR WITH HOLD FOR {sql.select_ads(where)}"
        logger.debug("cursor_declare sql=%s", statement)

        async with self._lock:
            try:
                conn = await self._connection()
                await conn.execute(statement, *args)
            except _SESSION_ERRORS as exc:
                raise CursorCreationError(f"Could not declare cursor: {exc}") from exc
            self._last_used[name] = self._clock()

        logger.info("cursor_declared name=%s clauses=%s", name, filters.describe(clauses))
        return name

    async def fetch_from_cursor(self, name: str, count: int) -> list[Ad]:
        """
        Fetch up to `count` rows forward from the cursor.

        Fewer rows than requested (or none) means the cursor is exhausted;
        that is a normal result.
        """
        check_fetch_count(count)
        if not is_valid_cursor_name(name):
            raise CursorFetchError(f"Unknown cursor: {name!r}")

        async with self._lock:
            try:
                conn = await self._connection()
            except _SESSION_ERRORS as exc:
                raise CursorFetchError(f"Could not fetch from cursor {name}: {exc}") from exc

            # Checked after _connection(): a lost session forgets its cursors.
            if name not in self._last_used:
                raise CursorFetchError(f"Unknown cursor: {name!r}")
            self._last_used[name] = self._clock()

            # FETCH FORWARD 0 re-reads the current row in Postgres.
            if count == 0:
                return []

            try:
                rows = await conn.fetch(f"FETCH FORWARD {count} FROM {name}")
            except asyncpg.InvalidCursorNameError as exc:
                self._last_used.pop(name, None)
                raise CursorFetchError(f"Unknown cursor: {name!r}") from exc
            except _SESSION_ERRORS as exc:
                raise CursorFetchError(f"Could not fetch from cursor {name}: {exc}") from exc

        return [sql.row_to_ad(row) for row in rows]

    async def _close_on_session(self, name: str) -> None:
        # Caller holds self._lock.
        if self._session is None or self._session.is_closed():
            return None
        try:
            await self._session.execute(f"CLOSE {name}")
        except asyncpg.InvalidCursorNameError:
            logger.debug("cursor_already_closed name=%s", name)

    async def close_cursor(self, name: str) -> bool:
        """
        Close a cursor. Returns False if it was not open.
        """
        if not is_valid_cursor_name(name):
            return False
        async with self._lock:
            if self._session is None or self._session.is_closed():
                # Cursors died with the session; none of the names are live.
                if self._last_used:
                    logger.warning("cursor_session_lost dropped=%s", len(self._last_used))
                self._last_used.clear()
                return False
            if self._last_used.pop(name, None) is None:
                return False
            try:
                await self._close_on_session(name)
            except _SESSION_ERRORS as exc:
                raise CursorError(f"Could not close cursor {name}: {exc}") from exc
        logger.info("cursor_closed name=%s", name)
        return True

    async def expire_idle(self) -> list[str]:
        """
        Close every cursor idle for longer than `idle_ttl_s`.
        """
        now = self._clock()
        expired: list[str] = []
        async with self._lock:
            for name, last_used in list(self._last_used.items()):
                if now - last_used < self.idle_ttl_s:
                    continue
                self._last_used.pop(name, None)
                try:
                    await self._close_on_session(name)
                except _SESSION_ERRORS:
                    logger.exception("cursor_expire_failed name=%s", name)
                    continue
                expired.append(name)
        if expired:
            logger.info("cursors_expired count=%s", len(expired))
        return expired

    async def _sweep_forever(self, interval_s: float) -> None:
        while True:
            await asyncio.sleep(interval_s)
            try:
                await self.expire_idle()
            except Exception:
                logger.exception("cursor_sweep_failed")

    def start_sweeper(self, interval_s: float) -> None:
        if self._sweeper is not None:
            return None
        self._sweeper = asyncio.create_task(self._sweep_forever(interval_s))

    async def close(self) -> None:
        """
        Stop the sweeper, close every cursor and the session.
        """
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None

        async with self._lock:
            names = list(self._last_used)
            self._last_used.clear()
            for name in names:
                try:
                    await self._close_on_session(name)
                except _SESSION_ERRORS:
                    logger.exception("cursor_close_failed name=%s", name)
            if self._session is not None and not self._session.is_closed():
                await self._session.close()
            self._session = None
