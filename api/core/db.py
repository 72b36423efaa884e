"""
Postgres access for the cashKuber API (asyncpg, raw SQL).

Two kinds of connections:
- the shared pool, created in the app lifespan (`api/main.py`) and used by
  the users store for reads and the batch insert
- a short-lived dedicated connection opened and closed by the `GET /`
  health check, so it reports real connectivity rather than pool state

asyncpg binds positional placeholders: $1, $2, ...
"""

from __future__ import annotations

from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import asyncpg

from . import settings

_pool: asyncpg.Pool | None = None


def _sanitize_database_url(url: str) -> str:
    parts = urlsplit(url)
    if not parts.query:
        return url

    params = [(k, v) for (k, v) in parse_qsl(parts.query, keep_blank_values=True) if k != "sslmode"]
    query = urlencode(params)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def database_url() -> str:
    return _sanitize_database_url(settings.connection_string())


async def init_pool() -> None:
    global _pool
    if _pool is not None:
        return None
    # min_size=0: the app starts even when the DB is down; `GET /` reports it.
    _pool = await asyncpg.create_pool(
        dsn=database_url(),
        min_size=0,
        max_size=settings.db_pool_max_size(),
        command_timeout=settings.db_command_timeout(),
    )


async def close_pool() -> None:
    global _pool
    if _pool is None:
        return None
    await _pool.close()
    _pool = None


def pool() -> asyncpg.Pool:
    if _pool is None:
        raise RuntimeError("DB pool is not initialized. Call init_pool() on startup.")
    return _pool


def _record_to_dict(record: asyncpg.Record) -> dict[str, Any]:
    return dict(record)


async def fetch_all(sql: str, *args: Any) -> list[dict[str, Any]]:
    """
    Run a query and return all rows as a list of dicts.
    """
    rows = await pool().fetch(sql, *args)
    return [_record_to_dict(r) for r in rows]


async def check_connection() -> None:
    """
    Open and close a dedicated connection (outside the pool).

    Raises whatever the driver raises when the database is unreachable.
    """
    conn = await asyncpg.connect(dsn=database_url(), timeout=settings.db_connect_timeout())
    await conn.close()
