"""
FastAPI router for the cashKuber user endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse

from core import settings

from . import repository
from . import service

router = APIRouter()


def get_user_store() -> repository.UserStore:
    return repository.PostgresUserStore()


def get_expected_api_key() -> str | None:
    return settings.api_key()


@router.get("/cashKuber")
async def list_users(
    store: repository.UserStore = Depends(get_user_store),
) -> list[dict]:
    """
    Every stored user, oldest first.
    """
    return await store.fetch_all()


@router.post("/cashKuber")
async def ingest_users(
    request: Request,
    api_key: str | None = Header(default=None, alias="api-key"),
    expected_api_key: str | None = Depends(get_expected_api_key),
    store: repository.UserStore = Depends(get_user_store),
) -> JSONResponse:
    """
    Accept one user object or an array of them.

    Status is 200 (all inserted), 207 (mixed) or 409 (all skipped); request
    level failures are 401/400/500 with a `message`.
    """
    # Reject before reading the body.
    service.authorize(api_key, expected_api_key)
    raw_body = await request.body()
    outcome = await service.ingest(
        store,
        api_key=api_key,
        raw_body=raw_body,
        expected_api_key=expected_api_key,
    )
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)
