"""
Request models for the cashKuber ingestion endpoint.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, TypeAdapter, model_validator

# JSON key (lower-cased) -> model field.
_FIELD_BY_KEY = {
    "name": "name",
    "phone": "phone",
    "email": "email",
    "employment": "employment",
    "pan": "pan",
    "pincode": "pincode",
    "income": "income",
    "city": "city",
    "state": "state",
    "dob": "dob",
    "gender": "gender",
    "partnerid": "partner_id",
}

# Columns in insert order; matches the `users` table.
COLUMNS = (
    "name",
    "phone",
    "email",
    "employment",
    "pan",
    "pincode",
    "income",
    "city",
    "state",
    "dob",
    "gender",
    "partner_id",
)


def is_blank(value: str | None) -> bool:
    return value is None or not value.strip()


class UserIn(BaseModel):
    """
    One submitted user. Field names are matched case-insensitively; `id` and
    unknown keys are dropped.
    """

    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    phone: str | None = None
    email: str | None = None
    employment: str | None = None
    pan: str | None = None
    pincode: str | None = None
    income: str | None = None
    city: str | None = None
    state: str | None = None
    dob: str | None = None
    gender: str | None = None
    partner_id: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _fold_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        folded: dict[str, Any] = {}
        for key, value in data.items():
            field = _FIELD_BY_KEY.get(str(key).lower())
            if field is not None:
                folded[field] = value
        return folded

    def row(self) -> tuple[str | None, ...]:
        return tuple(getattr(self, column) for column in COLUMNS)


UserBatch = TypeAdapter(list[UserIn])
