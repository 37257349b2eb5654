"""
Async database access (raw SQL) using asyncpg.

`Database` owns the connection pool. FastAPI opens it on startup and closes it
on shutdown (see `api/main.py`); handlers get it through dependencies instead
of a module-level global.

Read and write traffic go through separate accessors. Both are backed by the
same pool today; the split is only a seam for routing reads to a replica.

SQL parameter style:
- asyncpg uses positional placeholders: $1, $2, $3, ...
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import asyncpg

from . import config

logger = logging.getLogger(__name__)


class PoolError(RuntimeError):
    """
    Raised when a connection cannot be obtained (pool closed, exhausted, or
    the server is unreachable).
    """


class StorageError(RuntimeError):
    """
    A query or statement failed after a connection was obtained.
    """


def _sanitize_database_url(url: str) -> str:
    parts = urlsplit(url)
    if not parts.query:
        return url

    params = [(k, v) for (k, v) in parse_qsl(parts.query, keep_blank_values=True) if k != "sslmode"]
    query = urlencode(params)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def database_url() -> str:
    url = config.database_url_raw()
    if not url:
        raise RuntimeError("DATABASE_URL is not set.")
    return _sanitize_database_url(url)


class Database:
    def __init__(
        self,
        dsn: str,
        *,
        min_size: int = 1,
        max_size: int = 10,
        command_timeout: float = 30,
        acquire_timeout: float = 10,
    ) -> None:
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self.acquire_timeout = acquire_timeout
        self._pool: asyncpg.Pool | None = None

    @classmethod
    def from_env(cls) -> "Database":
        return cls(
            database_url(),
            min_size=config.db_pool_min_size(),
            max_size=config.db_pool_max_size(),
            command_timeout=config.db_command_timeout_s(),
            acquire_timeout=config.db_acquire_timeout_s(),
        )

    async def open(self) -> None:
        if self._pool is not None:
            return None
        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=self.command_timeout,
            )
        except (OSError, asyncpg.PostgresError) as exc:
            raise PoolError(f"Could not create connection pool: {exc}") from exc
        logger.info("db_pool_opened min_size=%s max_size=%s", self.min_size, self.max_size)

    async def close(self) -> None:
        if self._pool is None:
            return None
        await self._pool.close()
        self._pool = None
        logger.info("db_pool_closed")

    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise PoolError("DB pool is not initialized. Call open() on startup.")
        return self._pool

    @asynccontextmanager
    async def _acquire(self) -> AsyncIterator[asyncpg.Connection]:
        pool = self.pool()
        try:
            conn = await pool.acquire(timeout=self.acquire_timeout)
        except (asyncio.TimeoutError, OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
            raise PoolError(f"Could not acquire a connection: {exc!r}") from exc
        try:
            yield conn
        finally:
            await pool.release(conn)

    def read(self):
        """
        Borrow a connection for read-only work.
        """
        return self._acquire()

    def write(self):
        """
        Borrow a connection for statements that modify data.
        """
        return self._acquire()

    async def connect_session(self) -> asyncpg.Connection:
        """
        Open a standalone connection outside the pool.

        Pool connections are reset on release (asyncpg runs `CLOSE ALL`), so
        session-scoped state such as holdable cursors needs its own session.
        """
        try:
            return await asyncpg.connect(dsn=self.dsn, command_timeout=self.command_timeout)
        except (OSError, asyncpg.PostgresError) as exc:
            raise PoolError(f"Could not open a session connection: {exc}") from exc


# Server errors, dropped connections and command_timeout expiry.
_QUERY_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)


def _record_to_dict(record: asyncpg.Record) -> dict[str, Any]:
    return dict(record)


async def fetch_one(conn: asyncpg.Connection, sql: str, *args: Any) -> dict[str, Any] | None:
    """
    Run a query and return a single row as a dict (or None).
    """
    try:
        row = await conn.fetchrow(sql, *args)
    except _QUERY_ERRORS as exc:
        raise StorageError(f"Query failed: {exc!r}") from exc
    return _record_to_dict(row) if row is not None else None


async def fetch_all(conn: asyncpg.Connection, sql: str, *args: Any) -> list[dict[str, Any]]:
    """
    Run a query and return all rows as a list of dicts.
    """
    try:
        rows = await conn.fetch(sql, *args)
    except _QUERY_ERRORS as exc:
        raise StorageError(f"Query failed: {exc!r}") from exc
    return [_record_to_dict(r) for r in rows]


async def execute(conn: asyncpg.Connection, sql: str, *args: Any) -> str:
    """
    Run a statement (INSERT/UPDATE/DELETE/DDL) and return its status tag,
    e.g. "DELETE 1".
    """
    try:
        return await conn.execute(sql, *args)
    except _QUERY_ERRORS as exc:
        raise StorageError(f"Statement failed: {exc!r}") from exc


def affected_rows(status: str) -> int:
    """
    Parse the row count out of a command status tag ("DELETE 1" -> 1).
    """
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, AttributeError):
        return 0
