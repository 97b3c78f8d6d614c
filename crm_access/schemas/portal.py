"""Pydantic schemas for the client portal."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import Field

from crm_access.schemas.base import APIModel


class PortalContact(APIModel):
    id: int
    first_name: str
    last_name: str
    email: str
    account_id: int
    account_name: str | None = None


class PortalSetupRequest(APIModel):
    token: str = Field(..., min_length=1, max_length=256)
    # Length rule is enforced by the service so it reports a domain error.
    password: str = Field(..., max_length=256)


class PortalInviteRead(APIModel):
    message: str
    invite_link: str
    expires_at: datetime
    contact: PortalContact


class TaskCommentRead(APIModel):
    id: int
    task_id: int
    content: str
    author_type: str
    author_name: str
    created_at: datetime | None = None


class TaskCommentCreate(APIModel):
    content: str = Field(..., min_length=1, max_length=5000)


class PortalTaskRead(APIModel):
    id: int
    title: str
    description: str
    status: str
    progress: int
    account_id: int | None = None
    comments: list[TaskCommentRead] = []
    created_at: datetime | None = None
    updated_at: datetime | None = None


class TaskStatusUpdate(APIModel):
    status: Literal["In Progress", "Completed"]
