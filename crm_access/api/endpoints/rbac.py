"""
RBAC endpoints: roles, permissions, bootstrap.

Everything here is admin-only except ``/rbac/my-permissions``.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from crm_access.api.deps import get_current_user, get_db, require_admin
from crm_access.models.role import Permission, Role
from crm_access.models.user import User
from crm_access.schemas.rbac import (MyPermissions, PermissionCreate,
                                     PermissionRead, RBACInitialized,
                                     RoleDeleted, RoleRead, RoleWrite)
from crm_access.services.rbac_service import (rbac_service, resolve_role_name,
                                              role_ref_for)

router = APIRouter(prefix="/rbac", tags=["rbac"])
logger = logging.getLogger(__name__)


# ── Roles ───────────────────────────────────────────────────────────
@router.get("/roles", response_model=list[RoleRead])
async def list_roles(
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> list[Role]:
    return await rbac_service.list_roles(db)


@router.get("/roles/{role_id}", response_model=RoleRead)
async def get_role(
    role_id: int,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> Role:
    return await rbac_service.get_role(db, role_id)


@router.post("/roles", response_model=RoleRead, status_code=201)
async def create_role(
    body: RoleWrite,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> Role:
    role = await rbac_service.create_role(db, body.name, body.description, body.permissions)
    logger.info("Admin %s created role %s", admin.id, role.id)
    return role


@router.put("/roles/{role_id}", response_model=RoleRead)
async def update_role(
    role_id: int,
    body: RoleWrite,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> Role:
    """Replace name, description and the full permission set of a role."""
    role = await rbac_service.update_role(
        db, role_id, body.name, body.description, body.permissions
    )
    logger.info("Admin %s updated role %s", admin.id, role_id)
    return role


@router.delete("/roles/{role_id}", response_model=RoleDeleted)
async def delete_role(
    role_id: int,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> RoleDeleted:
    unassigned = await rbac_service.delete_role(db, role_id)
    logger.info("Admin %s deleted role %s", admin.id, role_id)
    return RoleDeleted(message="Role deleted successfully", users_unassigned=unassigned)


# ── Permissions ─────────────────────────────────────────────────────
@router.get("/permissions", response_model=list[PermissionRead])
async def list_permissions(
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> list[Permission]:
    return await rbac_service.list_all_permissions(db)


@router.post("/permissions", response_model=PermissionRead, status_code=201)
async def create_permission(
    body: PermissionCreate,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> Permission:
    return await rbac_service.create_permission(
        db, body.name, body.description, body.resource, body.action
    )


# ── Bootstrap / self ────────────────────────────────────────────────
@router.post("/initialize", response_model=RBACInitialized)
async def initialize_rbac(
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_admin),
) -> RBACInitialized:
    counts = await rbac_service.initialize_system_rbac(db)
    return RBACInitialized(message="System RBAC initialized successfully", **counts)


@router.get("/my-permissions", response_model=MyPermissions)
async def my_permissions(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MyPermissions:
    granted = await rbac_service.effective_permissions(db, current_user)
    return MyPermissions(
        user_id=current_user.id,
        role=resolve_role_name(role_ref_for(current_user)),
        permissions=sorted(granted),
    )
