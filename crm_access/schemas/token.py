"""Pydantic schemas for login and bearer tokens."""

from __future__ import annotations

from pydantic import BaseModel, Field

from crm_access.schemas.portal import PortalContact
from crm_access.schemas.user import UserRead


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=1, max_length=256)


class StaffToken(BaseModel):
    token: str
    token_type: str = "bearer"
    user: UserRead


class PortalToken(BaseModel):
    token: str
    contact: PortalContact
