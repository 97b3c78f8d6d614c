"""
Client portal endpoints.

- POST /portal/login and /portal/setup are public.
- Everything else requires a *portal* bearer token; staff tokens are
  rejected. GET /portal/tasks doubles as the client's session probe.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm_access.api.deps import get_current_contact, get_db
from crm_access.core.config import settings
from crm_access.core.exceptions import AuthorizationError, NotFoundError
from crm_access.core.rate_limit import limiter
from crm_access.core.security import PrincipalType
from crm_access.models.contact import Contact
from crm_access.models.task import Task, TaskComment
from crm_access.schemas.base import MessageResponse
from crm_access.schemas.portal import (PortalContact, PortalSetupRequest,
                                       PortalTaskRead, TaskCommentCreate,
                                       TaskCommentRead, TaskStatusUpdate)
from crm_access.schemas.token import LoginRequest, PortalToken
from crm_access.services.auth_service import auth_service

router = APIRouter(prefix="/portal", tags=["portal"])
logger = logging.getLogger(__name__)

_STATUS_PROGRESS = {"In Progress": 50, "Completed": 100}


def _public_view(task: Task) -> PortalTaskRead:
    """Task as a contact may see it: internal-only comments removed."""
    return PortalTaskRead(
        id=task.id,
        title=task.title,
        description=task.description,
        status=task.status,
        progress=task.progress,
        account_id=task.account_id,
        comments=[
            TaskCommentRead.model_validate(c) for c in task.comments if not c.is_private
        ],
        created_at=task.created_at,
        updated_at=task.updated_at,
    )


async def _get_assigned_task(db: AsyncSession, contact: Contact, task_id: int) -> Task:
    task = await db.scalar(
        select(Task).where(Task.id == task_id, Task.account_id == contact.account_id)
    )
    if task is None:
        raise NotFoundError("Task not found")
    if not task.is_assigned_to(contact.id):
        raise AuthorizationError("Not authorized to access this task")
    return task


# ── Public ──────────────────────────────────────────────────────────
@router.post("/login", response_model=PortalToken)
@limiter.limit(settings.PORTAL_LOGIN_RATE_LIMIT)
async def portal_login(
    request: Request,
    body: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> PortalToken:
    result = await auth_service.login(db, body.email, body.password, PrincipalType.PORTAL)
    return PortalToken(token=result.token, contact=PortalContact.model_validate(result.principal))


@router.post("/setup", response_model=MessageResponse)
async def portal_setup(
    body: PortalSetupRequest,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """Exchange a single-use invitation for a first portal password."""
    await auth_service.setup_portal_account(db, body.token, body.password)
    return MessageResponse(message="Portal access set up successfully")


# ── Authenticated ───────────────────────────────────────────────────
@router.get("/me", response_model=PortalContact)
async def portal_me(contact: Contact = Depends(get_current_contact)) -> PortalContact:
    return PortalContact.model_validate(contact)


@router.get("/tasks", response_model=list[PortalTaskRead])
async def list_portal_tasks(
    db: AsyncSession = Depends(get_db),
    contact: Contact = Depends(get_current_contact),
) -> list[PortalTaskRead]:
    """Tasks on the contact's account that are assigned to the contact."""
    result = await db.scalars(
        select(Task)
        .where(Task.account_id == contact.account_id)
        .order_by(Task.created_at.desc(), Task.id.desc())
    )
    return [_public_view(t) for t in result.all() if t.is_assigned_to(contact.id)]


@router.patch("/tasks/{task_id}/status", response_model=PortalTaskRead)
async def update_task_status(
    task_id: int,
    body: TaskStatusUpdate,
    db: AsyncSession = Depends(get_db),
    contact: Contact = Depends(get_current_contact),
) -> PortalTaskRead:
    """Contacts may only move a task to In Progress or Completed."""
    task = await _get_assigned_task(db, contact, task_id)
    task.status = body.status
    task.progress = _STATUS_PROGRESS[body.status]
    await db.commit()
    await db.refresh(task)
    logger.info("Contact %s set task %s to %s", contact.id, task_id, body.status)
    return _public_view(task)


@router.get("/tasks/{task_id}/comments", response_model=list[TaskCommentRead])
async def list_task_comments(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    contact: Contact = Depends(get_current_contact),
) -> list[TaskComment]:
    task = await _get_assigned_task(db, contact, task_id)
    return [c for c in task.comments if not c.is_private]


@router.post("/tasks/{task_id}/comments", response_model=TaskCommentRead, status_code=201)
async def add_task_comment(
    task_id: int,
    body: TaskCommentCreate,
    db: AsyncSession = Depends(get_db),
    contact: Contact = Depends(get_current_contact),
) -> TaskComment:
    task = await _get_assigned_task(db, contact, task_id)
    comment = TaskComment(
        task_id=task.id,
        content=body.content,
        author_type="external",
        author_id=contact.id,
        author_name=f"{contact.first_name} {contact.last_name}",
        author_email=contact.email,
        is_private=False,
    )
    db.add(comment)
    await db.commit()
    await db.refresh(comment)
    return comment
