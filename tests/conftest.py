from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from main import app
from users import router as users_router
from users.repository import CommitResult

API_KEY = "test-key"


class FakeUserStore:
    """
    In-memory stand-in for the Postgres store. Records every call.
    """

    def __init__(self, rows=None, fail_with=None):
        self.rows = [dict(r) for r in (rows or [])]
        self.fail_with = fail_with
        self.calls = []

    async def fetch_all(self):
        self.calls.append("fetch_all")
        return [dict(r) for r in self.rows]

    async def fetch_non_null_values(self, field):
        self.calls.append(("fetch_non_null_values", field))
        return {r[field] for r in self.rows if r.get(field) and r[field].strip()}

    async def append_batch(self, records):
        records = list(records)
        self.calls.append(("append_batch", len(records)))
        if self.fail_with is not None:
            return CommitResult(ok=False, error=self.fail_with)
        for record in records:
            row = record.model_dump()
            row["partnerId"] = row.pop("partner_id")
            row["id"] = len(self.rows) + 1
            self.rows.append(row)
        return CommitResult(ok=True, inserted=len(records))


@pytest.fixture
def store():
    return FakeUserStore()


@pytest.fixture
def client(store):
    app.dependency_overrides[users_router.get_user_store] = lambda: store
    app.dependency_overrides[users_router.get_expected_api_key] = lambda: API_KEY
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def headers():
    return {"api-key": API_KEY}
