"""
RBAC resolver: role-name / permission resolution and role administration.

Users carry their role in one of two shapes while the legacy free-text
column is phased out. ``role_ref_for`` folds both into a ``RoleRef``:

    Unassigned | LegacyRole(name) | LinkedRole(role_id, name)

and every resolver below branches on that union instead of inspecting the
raw column values.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Union

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from crm_access.core.exceptions import (ConflictError, NotFoundError,
                                        ValidationError)
from crm_access.models.role import Permission, Role
from crm_access.models.user import User

logger = logging.getLogger(__name__)

NO_ROLE = None
ADMIN_ROLE = "admin"
ADMIN_PERMISSION = "system:admin"

_PERMISSION_NAME_RE = re.compile(r"^([A-Za-z0-9_.-]+):([A-Za-z0-9_.-]+)$")


# ── RoleRef ─────────────────────────────────────────────────────────
@dataclass(frozen=True)
class Unassigned:
    pass


@dataclass(frozen=True)
class LegacyRole:
    name: str


@dataclass(frozen=True)
class LinkedRole:
    role_id: int
    name: str | None = None


RoleRef = Union[Unassigned, LegacyRole, LinkedRole]


def role_ref_for(user: User | None) -> RoleRef:
    """Build the effective role reference; the relational link wins."""
    if user is None:
        return Unassigned()
    if user.role_id is not None:
        role = user.role
        return LinkedRole(role_id=user.role_id, name=role.name if role is not None else None)
    if user.legacy_role and user.legacy_role.strip():
        return LegacyRole(name=user.legacy_role)
    return Unassigned()


def resolve_role_name(role_field: object) -> str | None:
    """Return the role name carried by ``role_field`` or ``NO_ROLE``.

    Accepts a ``RoleRef``, a ``Role``-like object with a ``name`` attribute,
    a mapping with a ``"name"`` key, a plain string or ``None``. Anything
    else is treated as absent; this function never raises.
    """
    if role_field is None or isinstance(role_field, Unassigned):
        return NO_ROLE
    if isinstance(role_field, (LegacyRole, LinkedRole)):
        name = role_field.name
    elif isinstance(role_field, str):
        name = role_field
    elif isinstance(role_field, Mapping):
        name = role_field.get("name")
    elif isinstance(role_field, (int, float, bool, bytes, list, tuple, set)):
        return NO_ROLE
    else:
        name = getattr(role_field, "name", None)
    if isinstance(name, str) and name.strip():
        return name
    return NO_ROLE


def resolve_permissions(role: Role | None) -> frozenset[str]:
    """Names of the active permissions attached to ``role``; empty for ``None``."""
    if role is None:
        return frozenset()
    permissions = getattr(role, "permissions", None) or []
    return frozenset(
        p.name for p in permissions if getattr(p, "is_active", True) and getattr(p, "name", None)
    )


# Permissions granted to legacy string roles that have no matching Role row.
LEGACY_ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    "manager": frozenset({
        "accounts:read", "accounts:write", "contacts:read", "contacts:write",
        "tasks:read", "tasks:write",
    }),
    "sales": frozenset({
        "accounts:read", "accounts:write", "contacts:read", "contacts:write",
        "tasks:read", "tasks:write",
    }),
    "support": frozenset({"accounts:read", "contacts:read", "tasks:read", "tasks:write"}),
    "user": frozenset({"accounts:read", "contacts:read", "tasks:read"}),
}


# ── System bootstrap data ───────────────────────────────────────────
SYSTEM_PERMISSIONS: list[dict[str, str]] = [
    {"name": "accounts:read", "description": "Read accounts"},
    {"name": "accounts:write", "description": "Create/update accounts"},
    {"name": "accounts:delete", "description": "Delete accounts"},
    {"name": "contacts:read", "description": "Read contacts"},
    {"name": "contacts:write", "description": "Create/update contacts"},
    {"name": "contacts:delete", "description": "Delete contacts"},
    {"name": "tasks:read", "description": "Read tasks"},
    {"name": "tasks:write", "description": "Create/update tasks"},
    {"name": "tasks:delete", "description": "Delete tasks"},
    {"name": "users:read", "description": "Read users"},
    {"name": "users:write", "description": "Create/update users"},
    {"name": "users:delete", "description": "Delete users"},
    {"name": "roles:read", "description": "Read roles"},
    {"name": "roles:write", "description": "Create/update roles"},
    {"name": "roles:delete", "description": "Delete roles"},
    {"name": "reports:read", "description": "Read reports"},
    {"name": "reports:write", "description": "Create/update reports"},
    {"name": ADMIN_PERMISSION, "description": "Full system access"},
]

SYSTEM_ROLES: list[dict] = [
    {
        "name": ADMIN_ROLE,
        "description": "System Administrator",
        "permissions": None,  # every system permission
    },
    {
        "name": "manager",
        "description": "Team Manager",
        "permissions": [
            "accounts:read", "accounts:write", "contacts:read", "contacts:write",
            "tasks:read", "tasks:write", "users:read", "reports:read", "reports:write",
        ],
    },
    {
        "name": "sales",
        "description": "Sales Representative",
        "permissions": [
            "accounts:read", "accounts:write", "contacts:read", "contacts:write",
            "tasks:read", "tasks:write", "reports:read",
        ],
    },
    {
        "name": "support",
        "description": "Support Representative",
        "permissions": [
            "accounts:read", "contacts:read", "contacts:write", "tasks:read", "tasks:write",
        ],
    },
    {
        "name": "user",
        "description": "Standard User",
        "permissions": ["accounts:read", "contacts:read", "tasks:read", "tasks:write"],
    },
]


def split_permission_name(
    name: str, resource: str | None = None, action: str | None = None
) -> tuple[str, str]:
    """Validate a ``resource:action`` name against optional classifiers."""
    match = _PERMISSION_NAME_RE.match(name or "")
    if match is None:
        raise ValidationError("Permission name must look like 'resource:action'")
    parsed_resource, parsed_action = match.groups()
    if resource is not None and resource != parsed_resource:
        raise ValidationError("Permission resource does not match its name")
    if action is not None and action != parsed_action:
        raise ValidationError("Permission action does not match its name")
    return parsed_resource, parsed_action


class RBACService:
    """Role and permission administration over an ``AsyncSession``."""

    # ── Resolution ──────────────────────────────────────────────────
    @staticmethod
    async def effective_permissions(db: AsyncSession, user: User | None) -> frozenset[str]:
        """Every permission name ``user`` holds through its role."""
        ref = role_ref_for(user)
        if isinstance(ref, Unassigned):
            return frozenset()

        name = resolve_role_name(ref)
        if isinstance(ref, LinkedRole):
            granted = resolve_permissions(user.role)
        else:
            role = await db.scalar(select(Role).where(Role.name == ref.name))
            if role is not None:
                granted = resolve_permissions(role)
            else:
                granted = LEGACY_ROLE_PERMISSIONS.get(ref.name.lower(), frozenset())
                if ref.name.lower() == ADMIN_ROLE:
                    name = ADMIN_ROLE

        if name == ADMIN_ROLE or ADMIN_PERMISSION in granted:
            everything = await db.scalars(select(Permission.name).where(Permission.is_active.is_(True)))
            return frozenset(everything.all()) | {ADMIN_PERMISSION}
        return granted

    @staticmethod
    async def has_permission(db: AsyncSession, user: User | None, permission: str) -> bool:
        granted = await RBACService.effective_permissions(db, user)
        return permission in granted or ADMIN_PERMISSION in granted

    @staticmethod
    async def is_admin(db: AsyncSession, user: User | None) -> bool:
        if resolve_role_name(role_ref_for(user)) == ADMIN_ROLE:
            return True
        return ADMIN_PERMISSION in await RBACService.effective_permissions(db, user)

    # ── Permissions ─────────────────────────────────────────────────
    @staticmethod
    async def list_all_permissions(db: AsyncSession) -> list[Permission]:
        """Every known permission, ordered by name then id."""
        result = await db.scalars(select(Permission).order_by(Permission.name, Permission.id))
        return list(result.all())

    @staticmethod
    async def create_permission(
        db: AsyncSession,
        name: str,
        description: str | None = None,
        resource: str | None = None,
        action: str | None = None,
    ) -> Permission:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Permission name is required")
        resource, action = split_permission_name(name, resource, action)

        existing = await db.scalar(select(Permission).where(Permission.name == name))
        if existing is not None:
            raise ConflictError("Permission with this name already exists")

        permission = Permission(
            name=name,
            description=description,
            resource=resource,
            action=action,
            is_system_permission=False,
        )
        db.add(permission)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictError("Permission with this name already exists") from None
        logger.info("Permission created: %s", name)
        return permission

    @staticmethod
    async def _load_permissions(
        db: AsyncSession, permission_ids: Iterable[int] | None
    ) -> list[Permission]:
        wanted = list(dict.fromkeys(permission_ids or []))
        if not wanted:
            return []
        result = await db.scalars(select(Permission).where(Permission.id.in_(wanted)))
        found = {p.id: p for p in result.all()}
        missing = [pid for pid in wanted if pid not in found]
        if missing:
            raise ValidationError(f"Unknown permission id(s): {missing}")
        return [found[pid] for pid in wanted]

    # ── Roles ───────────────────────────────────────────────────────
    @staticmethod
    async def list_roles(db: AsyncSession) -> list[Role]:
        result = await db.scalars(select(Role).order_by(Role.name))
        return list(result.all())

    @staticmethod
    async def get_role(db: AsyncSession, role_id: int, *, for_update: bool = False) -> Role:
        stmt = select(Role).where(Role.id == role_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        role = await db.scalar(stmt)
        if role is None:
            raise NotFoundError("Role not found")
        return role

    @staticmethod
    async def create_role(
        db: AsyncSession,
        name: str,
        description: str | None,
        permission_ids: Iterable[int] | None,
    ) -> Role:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Role name is required")
        if await db.scalar(select(Role.id).where(Role.name == name)) is not None:
            raise ConflictError("Role with this name already exists")

        permissions = await RBACService._load_permissions(db, permission_ids)
        role = Role(
            name=name,
            description=description,
            is_system_role=False,
            permissions=permissions,
        )
        db.add(role)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictError("Role with this name already exists") from None
        logger.info("Role created: %s (%d permissions)", name, len(permissions))
        return role

    @staticmethod
    async def update_role(
        db: AsyncSession,
        role_id: int,
        name: str,
        description: str | None,
        permission_ids: Iterable[int] | None,
    ) -> Role:
        """Replace name, description and the whole permission set at once.

        All validation happens before the row is touched, and the write is
        a single commit, so a failed update leaves the role unchanged.
        """
        role = await RBACService.get_role(db, role_id, for_update=True)
        try:
            name = (name or "").strip()
            if not name:
                raise ValidationError("Role name is required")
            old_name = role.name
            if name != old_name:
                if role.is_system_role:
                    raise ValidationError("System roles cannot be renamed")
                clash = await db.scalar(
                    select(Role.id).where(Role.name == name, Role.id != role.id)
                )
                if clash is not None:
                    raise ConflictError("Role with this name already exists")
            permissions = await RBACService._load_permissions(db, permission_ids)

            role.name = name
            role.description = description
            role.permissions = permissions
            if name != old_name:
                await db.execute(
                    update(User)
                    .where(User.role_id == role.id)
                    .values(legacy_role=name)
                    .execution_options(synchronize_session="fetch")
                )
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictError("Role with this name already exists") from None
        except Exception:
            await db.rollback()
            raise
        logger.info("Role %s updated: %s (%d permissions)", role_id, name, len(permissions))
        return role

    @staticmethod
    async def delete_role(db: AsyncSession, role_id: int) -> int:
        """Delete a role and unassign it from its users; returns the user count."""
        role = await RBACService.get_role(db, role_id, for_update=True)
        if role.is_system_role:
            await db.rollback()
            raise ValidationError("Cannot delete system roles")
        try:
            affected = (
                await db.scalars(
                    select(User).where(
                        or_(User.role_id == role.id, User.legacy_role == role.name)
                    )
                )
            ).all()
            for user in affected:
                if user.role_id == role.id:
                    user.role = None
                user.legacy_role = None
            await db.delete(role)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        unassigned = len(affected)
        logger.info("Role %s (%s) deleted; %d user(s) unassigned", role_id, role.name, unassigned)
        return unassigned

    @staticmethod
    async def assign_role_to_user(db: AsyncSession, user_id: int, role_id: int | None) -> User:
        """Set or clear a user's role; ``None`` removes it."""
        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        if role_id is None:
            user.role = None
            user.legacy_role = None
        else:
            role = await db.get(Role, role_id)
            if role is None:
                raise NotFoundError("Role not found")
            user.role = role
            user.legacy_role = role.name
        await db.commit()
        logger.info("User %s role set to %s", user_id, user.legacy_role or "<none>")
        return user

    # ── Bootstrap ───────────────────────────────────────────────────
    @staticmethod
    async def initialize_system_rbac(db: AsyncSession) -> dict[str, int]:
        """Ensure the canonical permissions and roles exist. Idempotent."""
        existing = await db.scalars(select(Permission))
        by_name = {p.name: p for p in existing.all()}
        permissions_created = 0
        for data in SYSTEM_PERMISSIONS:
            if data["name"] in by_name:
                continue
            resource, action = split_permission_name(data["name"])
            permission = Permission(
                name=data["name"],
                description=data["description"],
                resource=resource,
                action=action,
                is_system_permission=True,
            )
            db.add(permission)
            by_name[data["name"]] = permission
            permissions_created += 1

        system_names = [p["name"] for p in SYSTEM_PERMISSIONS]
        roles_created = 0
        existing_roles = set((await db.scalars(select(Role.name))).all())
        for data in SYSTEM_ROLES:
            if data["name"] in existing_roles:
                continue
            names = data["permissions"] if data["permissions"] is not None else system_names
            db.add(
                Role(
                    name=data["name"],
                    description=data["description"],
                    is_system_role=True,
                    permissions=[by_name[n] for n in names],
                )
            )
            roles_created += 1

        await db.commit()
        if permissions_created or roles_created:
            logger.info(
                "System RBAC initialised: %d permission(s), %d role(s) created",
                permissions_created,
                roles_created,
            )
        return {"permissions_created": permissions_created, "roles_created": roles_created}


rbac_service = RBACService()
