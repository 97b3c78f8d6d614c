"""
Staff auth endpoints: login, logout, current profile.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from crm_access.api.deps import get_current_user, get_db
from crm_access.core.config import settings
from crm_access.core.rate_limit import limiter
from crm_access.core.security import PrincipalType
from crm_access.models.user import User
from crm_access.schemas.base import MessageResponse
from crm_access.schemas.token import LoginRequest, StaffToken
from crm_access.schemas.user import UserRead
from crm_access.services.auth_service import auth_service

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=StaffToken)
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def login(
    request: Request,
    body: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> StaffToken:
    """Authenticate a staff user and return a staff bearer token."""
    result = await auth_service.login(db, body.email, body.password, PrincipalType.STAFF)
    return StaffToken(token=result.token, user=UserRead.model_validate(result.principal))


@router.post("/logout", response_model=MessageResponse)
async def logout(_user: User = Depends(get_current_user)) -> MessageResponse:
    """Tokens are stateless; the client drops its copy."""
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserRead)
async def read_current_user(current_user: User = Depends(get_current_user)) -> UserRead:
    """Return profile of the currently authenticated user."""
    return UserRead.model_validate(current_user)
