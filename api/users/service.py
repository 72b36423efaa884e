"""
Ingestion "service layer".

Independent of FastAPI routing:
- authorize the caller
- parse the raw body into a batch
- validate and dedupe each record against stored and in-batch phone/PAN values
- commit accepted records in one batch and shape the response
"""

from __future__ import annotations

import hmac
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from fastapi import status
from pydantic import ValidationError

from core.errors import AuthError, BodyError, StorageError

from .repository import UserStore
from .schemas import UserBatch, UserIn, is_blank

logger = logging.getLogger(__name__)

INSERTED_STATUS = "Inserted"

MISSING_PARTNER_ID = "Missing PartnerId"
MISSING_PHONE_AND_PAN = "Missing Phone and PAN"
DUPLICATE_PHONE = "Duplicate phone"
DUPLICATE_PAN = "Duplicate PAN"
DUPLICATE_PHONE_AND_PAN = "Duplicate phone and PAN"


@dataclass(frozen=True)
class IngestOutcome:
    status_code: int
    body: dict[str, Any]


@dataclass
class Partition:
    accepted: list[UserIn] = field(default_factory=list)
    skipped: list[dict[str, Any]] = field(default_factory=list)


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")


def authorize(api_key: str | None, expected_api_key: str | None) -> None:
    if not api_key or not expected_api_key:
        raise AuthError()
    if not hmac.compare_digest(api_key.encode("utf-8"), expected_api_key.encode("utf-8")):
        raise AuthError()


def _validation_detail(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    loc = ".".join(str(part) for part in first.get("loc", ())) or "body"
    return f"{loc}: {first.get('msg', 'invalid value')}"


def parse_batch(raw_body: bytes) -> list[UserIn]:
    """
    Array of users first, then a single user wrapped in a one-element batch.
    """
    if not raw_body or not raw_body.strip():
        raise BodyError("Request body is empty")

    try:
        value = json.loads(raw_body)
    except ValueError as e:
        raise BodyError(f"Invalid JSON format: {e}") from e

    try:
        batch = UserBatch.validate_python(value)
    except ValidationError:
        try:
            batch = [UserIn.model_validate(value)]
        except ValidationError as e:
            raise BodyError(f"Invalid JSON format: {_validation_detail(e)}") from e

    if not batch:
        raise BodyError("No valid users provided")
    return batch


def _duplicate_reason(user: UserIn, phones: set[str], pans: set[str]) -> str | None:
    phone_taken = not is_blank(user.phone) and user.phone in phones
    pan_taken = not is_blank(user.pan) and user.pan in pans
    if phone_taken and pan_taken:
        return DUPLICATE_PHONE_AND_PAN
    if phone_taken:
        return DUPLICATE_PHONE
    if pan_taken:
        return DUPLICATE_PAN
    return None


def _skipped(user: UserIn, reason: str) -> dict[str, Any]:
    if reason == MISSING_PHONE_AND_PAN:
        return {"name": user.name, "partnerId": user.partner_id, "reason": reason}
    return {"name": user.name, "phone": user.phone, "pan": user.pan, "reason": reason}


def partition(batch: list[UserIn], phones: set[str], pans: set[str]) -> Partition:
    """
    Split a batch into accepted users and skipped entries, in input order.

    `phones` and `pans` are updated in place as users are accepted so later
    users in the same batch see them as taken.
    """
    result = Partition()
    for user in batch:
        if is_blank(user.partner_id):
            result.skipped.append(_skipped(user, MISSING_PARTNER_ID))
            continue

        if is_blank(user.phone) and is_blank(user.pan):
            result.skipped.append(_skipped(user, MISSING_PHONE_AND_PAN))
            continue

        reason = _duplicate_reason(user, phones, pans)
        if reason is not None:
            result.skipped.append(_skipped(user, reason))
            continue

        result.accepted.append(user)
        if not is_blank(user.phone):
            phones.add(user.phone)
        if not is_blank(user.pan):
            pans.add(user.pan)

    return result


def _inserted(user: UserIn, created_at: str) -> dict[str, Any]:
    return {
        "name": user.name,
        "phone": user.phone,
        "pan": user.pan,
        "partnerId": user.partner_id,
        "status": INSERTED_STATUS,
        "createdAt": created_at,
    }


def build_outcome(result: Partition, created_at: str) -> IngestOutcome:
    inserted = [_inserted(user, created_at) for user in result.accepted]
    skipped = result.skipped

    if inserted and skipped:
        return IngestOutcome(
            status_code=status.HTTP_207_MULTI_STATUS,
            body={
                "message": "Some users inserted, some skipped",
                "insertedCount": len(inserted),
                "skippedCount": len(skipped),
                "inserted": inserted,
                "skipped": skipped,
            },
        )

    if skipped:
        return IngestOutcome(
            status_code=status.HTTP_409_CONFLICT,
            body={
                "message": "All users skipped (invalid or duplicate)",
                "skippedCount": len(skipped),
                "skipped": skipped,
            },
        )

    return IngestOutcome(
        status_code=status.HTTP_200_OK,
        body={
            "message": "All users inserted successfully",
            "insertedCount": len(inserted),
            "inserted": inserted,
        },
    )


async def ingest(
    store: UserStore,
    *,
    api_key: str | None,
    raw_body: bytes,
    expected_api_key: str | None,
) -> IngestOutcome:
    """
    High-level ingestion step for one POST /cashKuber request.

    This is what the FastAPI router should call.
    """
    authorize(api_key, expected_api_key)
    batch = parse_batch(raw_body)

    phones = await store.fetch_non_null_values("phone")
    pans = await store.fetch_non_null_values("pan")

    result = partition(batch, phones, pans)

    if result.accepted:
        commit = await store.append_batch(result.accepted)
        if not commit.ok:
            raise StorageError(f"Failed to save users: {commit.error}")

    logger.info(
        "ingest_complete received=%s inserted=%s skipped=%s",
        len(batch),
        len(result.accepted),
        len(result.skipped),
    )
    return build_outcome(result, _utc_timestamp())
