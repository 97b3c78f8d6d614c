"""Pydantic schemas for staff users."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field, field_validator, model_validator

from crm_access.schemas.base import APIModel
from crm_access.services.rbac_service import resolve_role_name, role_ref_for


class UserCreate(APIModel):
    name: str = Field(..., min_length=2, max_length=200)
    email: str
    password: str = Field(..., min_length=6)
    role_id: int | None = None

    @field_validator("email")
    @classmethod
    def _normalise_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("Invalid email address")
        return v


class UserRead(APIModel):
    id: int
    name: str
    email: str
    role: str | None = None
    role_id: int | None = None
    is_google_user: bool = False
    is_active: bool = True
    created_at: datetime | None = None

    @model_validator(mode="before")
    @classmethod
    def _flatten_role(cls, data: object) -> object:
        # ORM rows carry a Role object and a legacy string; expose one name.
        if hasattr(data, "__table__"):
            return {
                "id": data.id,
                "name": data.name,
                "email": data.email,
                "role": resolve_role_name(role_ref_for(data)),
                "role_id": data.role_id,
                "is_google_user": bool(data.is_google_user),
                "is_active": bool(data.is_active),
                "created_at": data.created_at,
            }
        return data


class RoleAssignment(APIModel):
    # explicit null clears the role; an absent key is a 422
    role_id: int | None = Field(...)
