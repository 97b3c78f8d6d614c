"""
User management endpoints. Managers may list users; everything else is admin-only.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from crm_access.api.deps import get_db, require_admin, require_manager_or_admin
from crm_access.models.user import User
from crm_access.schemas.user import RoleAssignment, UserCreate, UserRead
from crm_access.services.auth_service import auth_service
from crm_access.services.rbac_service import rbac_service

router = APIRouter(prefix="/users", tags=["users"])
logger = logging.getLogger(__name__)


@router.get("", response_model=list[UserRead])
async def list_users(
    db: AsyncSession = Depends(get_db),
    _viewer: User = Depends(require_manager_or_admin),
) -> list[UserRead]:
    users = await auth_service.list_users(db)
    return [UserRead.model_validate(u) for u in users]


@router.post("", response_model=UserRead, status_code=201)
async def create_user(
    body: UserCreate,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> UserRead:
    """Create a new staff account, optionally with a role."""
    user = await auth_service.create_user(
        db, body.name, body.email, body.password, role_id=body.role_id
    )
    return UserRead.model_validate(user)


@router.get("/{user_id}", response_model=UserRead)
async def get_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> UserRead:
    return UserRead.model_validate(await auth_service.get_user(db, user_id))


@router.post("/{user_id}/role", response_model=UserRead)
async def assign_role(
    user_id: int,
    body: RoleAssignment,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> UserRead:
    """Set the user's role; ``{"roleId": null}`` removes it."""
    user = await rbac_service.assign_role_to_user(db, user_id, body.role_id)
    logger.info("Admin %s set role of user %s to %s", admin.id, user_id, body.role_id)
    return UserRead.model_validate(user)
