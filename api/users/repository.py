"""
User persistence.
This module is where the `users` table SQL lives.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Protocol

import asyncpg

from core import db
from core.errors import StorageError

from .schemas import COLUMNS, UserIn

logger = logging.getLogger(__name__)

UNIQUE_FIELDS = {"phone", "pan"}

# Driver, connection and uninitialized-pool failures.
DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, RuntimeError)

_INSERT_SQL = (
    f"INSERT INTO users ({', '.join(COLUMNS)}) "
    f"VALUES ({', '.join(f'${i}' for i in range(1, len(COLUMNS) + 1))})"
)


@dataclass(frozen=True)
class CommitResult:
    ok: bool
    inserted: int = 0
    error: str | None = None


class UserStore(Protocol):
    async def fetch_all(self) -> list[dict[str, Any]]: ...

    async def fetch_non_null_values(self, field: str) -> set[str]: ...

    async def append_batch(self, records: Iterable[UserIn]) -> CommitResult: ...


def _check_unique_field(field: str) -> str:
    if field not in UNIQUE_FIELDS:
        raise ValueError(f"Not a unique field: {field!r}. Expected one of {sorted(UNIQUE_FIELDS)}.")
    return field


def _error_text(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


class PostgresUserStore:
    """
    `UserStore` backed by the shared asyncpg pool.

    Reads raise `StorageError` on driver failures; `append_batch` reports
    them through `CommitResult` instead.
    """

    async def fetch_all(self) -> list[dict[str, Any]]:
        try:
            return await db.fetch_all(
                """
                SELECT id, name, phone, email, employment, pan, pincode, income,
                       city, state, dob, gender, partner_id AS "partnerId"
                FROM users
                ORDER BY id
                """
            )
        except DB_ERRORS as e:
            logger.exception("fetch_all_failed")
            raise StorageError(f"Failed to read users: {_error_text(e)}") from e

    async def fetch_non_null_values(self, field: str) -> set[str]:
        # Column name is whitelisted above; it cannot be a bind parameter.
        column = _check_unique_field(field)
        try:
            rows = await db.fetch_all(
                f"""
                SELECT DISTINCT {column} AS value
                FROM users
                WHERE {column} IS NOT NULL
                  AND btrim({column}) <> ''
                """
            )
        except DB_ERRORS as e:
            logger.exception("fetch_non_null_values_failed field=%s", column)
            raise StorageError(f"Failed to read users: {_error_text(e)}") from e
        return {str(row["value"]) for row in rows}

    async def append_batch(self, records: Iterable[UserIn]) -> CommitResult:
        """
        Insert every record in one transaction. Failures come back as a
        result, and nothing from the batch is committed.
        """
        rows = [record.row() for record in records]
        if not rows:
            return CommitResult(ok=True, inserted=0)

        try:
            pool = db.pool()
            async with pool.acquire() as conn:  # type: asyncpg.Connection
                async with conn.transaction():
                    await conn.executemany(_INSERT_SQL, rows)
        except DB_ERRORS as e:
            logger.exception("append_batch_failed rows=%s", len(rows))
            return CommitResult(ok=False, error=_error_text(e))

        return CommitResult(ok=True, inserted=len(rows))
