"""
FastAPI dependencies: database session and auth guards for both namespaces.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from crm_access.core.config import settings
from crm_access.core.exceptions import AuthenticationError, AuthorizationError
from crm_access.db.session import async_session_factory
from crm_access.models.contact import Contact
from crm_access.models.user import User
from crm_access.services.auth_service import auth_service
from crm_access.services.rbac_service import (rbac_service, resolve_role_name,
                                               role_ref_for)

# auto_error=False so a missing header surfaces as our own 401 envelope
staff_scheme = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_PREFIX}/auth/login", auto_error=False, scheme_name="StaffBearer"
)
portal_scheme = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_PREFIX}/portal/login", auto_error=False, scheme_name="PortalBearer"
)


# ── Database session ────────────────────────────────────────────────
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


# ── Staff ───────────────────────────────────────────────────────────
async def get_current_user(
    token: Optional[str] = Depends(staff_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the staff user behind a staff bearer token."""
    if not token:
        raise AuthenticationError("Not authenticated")
    return await auth_service.get_staff_user(db, token)


async def require_admin(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Only allow administrators (role ``admin`` or ``system:admin``)."""
    if not await rbac_service.is_admin(db, current_user):
        raise AuthorizationError("Admin access required")
    return current_user


def require_permission(permission: str) -> Callable[..., Awaitable[User]]:
    """Dependency factory guarding a route with a single permission."""

    async def _guard(
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
    ) -> User:
        if not await rbac_service.has_permission(db, current_user, permission):
            raise AuthorizationError(f"Missing permission '{permission}'")
        return current_user

    return _guard


def require_role(
    *role_names: str, message: str = "Insufficient role"
) -> Callable[..., Awaitable[User]]:
    """Dependency factory admitting users whose resolved role name is in ``role_names``."""
    allowed = frozenset(role_names)

    async def _guard(current_user: User = Depends(get_current_user)) -> User:
        role_name = resolve_role_name(role_ref_for(current_user))
        if role_name not in allowed:
            raise AuthorizationError(message)
        return current_user

    return _guard


require_manager_or_admin = require_role(
    "admin", "manager", message="Manager or Admin access required"
)


# ── Portal ──────────────────────────────────────────────────────────
async def get_current_contact(
    token: Optional[str] = Depends(portal_scheme),
    db: AsyncSession = Depends(get_db),
) -> Contact:
    """Resolve the portal contact behind a portal bearer token."""
    if not token:
        raise AuthenticationError("Access token required")
    return await auth_service.get_portal_contact(db, token)
