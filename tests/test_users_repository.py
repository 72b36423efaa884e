import asyncio
from contextlib import asynccontextmanager

import pytest

from core import db
from core.errors import StorageError
from users.repository import PostgresUserStore
from users.schemas import UserIn


class FakeConnection:
    def __init__(self, error=None):
        self.error = error
        self.executed = []
        self.transactions = 0

    @asynccontextmanager
    async def transaction(self):
        self.transactions += 1
        yield

    async def executemany(self, sql, rows):
        if self.error is not None:
            raise self.error
        self.executed.append((sql, rows))


class FakePool:
    def __init__(self, conn):
        self.conn = conn

    @asynccontextmanager
    async def acquire(self):
        yield self.conn


def _users(*dicts):
    return [UserIn.model_validate(d) for d in dicts]


def test_append_batch_inserts_in_one_transaction(monkeypatch):
    conn = FakeConnection()
    monkeypatch.setattr(db, "pool", lambda: FakePool(conn))

    result = asyncio.run(
        PostgresUserStore().append_batch(
            _users({"name": "A", "phone": "1", "partnerId": "p1"}, {"pan": "X", "partnerId": "p2"})
        )
    )

    assert result.ok
    assert result.inserted == 2
    assert conn.transactions == 1
    sql, rows = conn.executed[0]
    assert sql.startswith("INSERT INTO users")
    assert "$12" in sql
    assert rows[0][0] == "A"
    assert rows[0][-1] == "p1"
    assert rows[1][4] == "X"


def test_append_batch_reports_driver_failure(monkeypatch):
    conn = FakeConnection(error=OSError("connection reset"))
    monkeypatch.setattr(db, "pool", lambda: FakePool(conn))

    result = asyncio.run(PostgresUserStore().append_batch(_users({"phone": "1", "partnerId": "p"})))

    assert not result.ok
    assert result.inserted == 0
    assert result.error == "connection reset"


def test_append_batch_without_pool_is_a_failed_result(monkeypatch):
    monkeypatch.setattr(db, "_pool", None)

    result = asyncio.run(PostgresUserStore().append_batch(_users({"phone": "1", "partnerId": "p"})))

    assert not result.ok
    assert "not initialized" in result.error


def test_append_empty_batch_skips_the_database(monkeypatch):
    monkeypatch.setattr(db, "_pool", None)

    result = asyncio.run(PostgresUserStore().append_batch([]))

    assert result.ok
    assert result.inserted == 0


def test_fetch_non_null_values_only_for_unique_fields():
    with pytest.raises(ValueError, match="Not a unique field"):
        asyncio.run(PostgresUserStore().fetch_non_null_values("email"))


def test_fetch_non_null_values_returns_a_set(monkeypatch):
    seen = []

    async def fake_fetch_all(sql, *args):
        seen.append(sql)
        return [{"value": "111"}, {"value": "222"}]

    monkeypatch.setattr(db, "fetch_all", fake_fetch_all)

    values = asyncio.run(PostgresUserStore().fetch_non_null_values("pan"))

    assert values == {"111", "222"}
    assert "pan IS NOT NULL" in seen[0]


@pytest.mark.parametrize(
    "call",
    [
        lambda store: store.fetch_all(),
        lambda store: store.fetch_non_null_values("phone"),
    ],
)
def test_read_failures_raise_storage_error(monkeypatch, call):
    async def refused(sql, *args):
        raise OSError("connection refused")

    monkeypatch.setattr(db, "fetch_all", refused)

    with pytest.raises(StorageError, match="Failed to read users: connection refused"):
        asyncio.run(call(PostgresUserStore()))
