"""Pydantic schemas for roles and permissions."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field, field_validator

from crm_access.schemas.base import APIModel


class PermissionRead(APIModel):
    id: int
    name: str
    description: str | None = None
    resource: str | None = None
    action: str | None = None
    is_system_permission: bool = False
    is_active: bool = True


class PermissionCreate(APIModel):
    name: str = Field(..., min_length=3, max_length=100)
    description: str | None = Field(default=None, max_length=255)
    resource: str | None = None
    action: str | None = None


class RoleRead(APIModel):
    id: int
    name: str
    description: str | None = None
    is_system_role: bool = False
    is_active: bool = True
    permissions: list[PermissionRead] = []
    created_at: datetime | None = None
    updated_at: datetime | None = None


class RoleWrite(APIModel):
    """Body of both create and update; the permission list is the full set."""

    name: str = Field(..., max_length=50)
    description: str | None = Field(default=None, max_length=255)
    permissions: list[int] = []

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        return v.strip()


class RoleDeleted(APIModel):
    message: str
    users_unassigned: int


class RBACInitialized(APIModel):
    message: str
    permissions_created: int
    roles_created: int


class MyPermissions(APIModel):
    user_id: int
    role: str | None
    permissions: list[str]
