"""
Portal access management for contacts: staff side.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from crm_access.api.deps import get_db, require_permission
from crm_access.models.user import User
from crm_access.schemas.base import MessageResponse
from crm_access.schemas.portal import PortalContact, PortalInviteRead
from crm_access.services.auth_service import auth_service

router = APIRouter(prefix="/contacts", tags=["contacts"])


@router.post("/{contact_id}/portal/invite", response_model=PortalInviteRead)
async def invite_to_portal(
    contact_id: int,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("contacts:write")),
) -> PortalInviteRead:
    """Issue a single-use setup link. Delivery is up to the caller."""
    invite = await auth_service.issue_portal_invite(db, contact_id)
    return PortalInviteRead(
        message="Portal invitation created successfully",
        invite_link=invite.link,
        expires_at=invite.expires_at,
        contact=PortalContact.model_validate(invite.contact),
    )


@router.delete("/{contact_id}/portal/access", response_model=MessageResponse)
async def revoke_portal_access(
    contact_id: int,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission("contacts:write")),
) -> MessageResponse:
    await auth_service.revoke_portal_access(db, contact_id)
    return MessageResponse(message="Portal access revoked successfully")
