"""Auth service: staff/portal login, token validation, portal onboarding, users."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Union

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from crm_access.core.config import settings
from crm_access.core.exceptions import (AuthenticationError, ConflictError,
                                        NotFoundError, ValidationError)
from crm_access.core.security import (PrincipalType, create_token, decode_token,
                                      generate_invite_token, get_password_hash,
                                      hash_invite_token, verify_password)
from crm_access.models.contact import Contact
from crm_access.models.role import Role
from crm_access.models.user import User

logger = logging.getLogger(__name__)

_INVALID_INVITE = "Invalid or expired invitation token"


@dataclass
class LoginResult:
    token: str
    principal: Union[User, Contact]
    principal_type: PrincipalType


@dataclass
class PortalInvite:
    token: str
    link: str
    expires_at: datetime
    contact: Contact


def _normalise_email(email: str | None) -> str:
    return (email or "").strip().lower()


class AuthService:
    """Handles authentication for both principal namespaces."""

    # ── Login / tokens ──────────────────────────────────────────────
    @staticmethod
    async def login(
        db: AsyncSession,
        email: str,
        password: str,
        principal_type: PrincipalType,
    ) -> LoginResult:
        """Authenticate a principal inside its own namespace.

        Raises:
            AuthenticationError: for an unknown email, a wrong password, an
                inactive account or a contact without portal access. The
                message is identical in every case.
        """
        email = _normalise_email(email)
        if principal_type is PrincipalType.STAFF:
            principal = await db.scalar(select(User).where(User.email == email))
            ok = (
                principal is not None
                and verify_password(password, principal.hashed_password)
                and principal.is_active
            )
        else:
            principal = await db.scalar(
                select(Contact)
                .where(
                    func.lower(Contact.email) == email,
                    Contact.has_portal_access.is_(True),
                    Contact.is_portal_active.is_(True),
                )
                .order_by(Contact.id)
                .limit(1)
            )
            ok = principal is not None and verify_password(
                password, principal.portal_password_hash
            )

        if not ok:
            logger.info("Failed %s login for %s", principal_type.value, email)
            raise AuthenticationError("Invalid credentials")

        if isinstance(principal, Contact):
            principal.last_portal_login = datetime.now(timezone.utc)
            await db.commit()

        token = create_token(principal.id, principal_type)
        logger.info("%s principal %s logged in", principal_type.value, principal.id)
        return LoginResult(token=token, principal=principal, principal_type=principal_type)

    @staticmethod
    def validate_token(token: str, expected_type: PrincipalType) -> int:
        """Verify signature, expiry and namespace; return the principal id."""
        payload = decode_token(token, expected_type)
        try:
            return int(payload["sub"])
        except (TypeError, ValueError):
            raise AuthenticationError("Invalid or expired token") from None

    @staticmethod
    async def get_staff_user(db: AsyncSession, token: str) -> User:
        user_id = AuthService.validate_token(token, PrincipalType.STAFF)
        user = await db.get(User, user_id)
        if user is None or not user.is_active:
            raise AuthenticationError("Invalid or expired token")
        return user

    @staticmethod
    async def get_portal_contact(db: AsyncSession, token: str) -> Contact:
        contact_id = AuthService.validate_token(token, PrincipalType.PORTAL)
        contact = await db.get(Contact, contact_id)
        if contact is None or not contact.has_portal_access or not contact.is_portal_active:
            raise AuthenticationError("Invalid or expired token")
        return contact

    # ── Portal onboarding ───────────────────────────────────────────
    @staticmethod
    async def issue_portal_invite(db: AsyncSession, contact_id: int) -> PortalInvite:
        """Create a fresh single-use setup token for a contact."""
        contact = await db.get(Contact, contact_id)
        if contact is None:
            raise NotFoundError("Contact not found")
        if contact.has_portal_access:
            raise ValidationError("Contact already has portal access")

        raw, token_hash = generate_invite_token()
        expires_at = datetime.now(timezone.utc) + timedelta(
            hours=settings.PORTAL_INVITE_EXPIRE_HOURS
        )
        contact.portal_invite_token_hash = token_hash
        contact.portal_invite_expires_at = expires_at
        await db.commit()
        logger.info("Portal invitation issued for contact %s", contact.id)
        return PortalInvite(
            token=raw,
            link=f"{settings.FRONTEND_URL.rstrip('/')}/portal/setup?token={raw}",
            expires_at=expires_at,
            contact=contact,
        )

    @staticmethod
    async def setup_portal_account(
        db: AsyncSession, setup_token: str, new_password: str
    ) -> Contact:
        """Exchange an invitation for a first portal password.

        The password is checked before the invitation is looked up, so a
        rejected password leaves the invitation usable.
        """
        min_length = settings.PORTAL_MIN_PASSWORD_LENGTH
        if not setup_token:
            raise ValidationError(_INVALID_INVITE)
        if not new_password or len(new_password) < min_length:
            raise ValidationError(f"Password must be at least {min_length} characters")

        contact = await db.scalar(
            select(Contact)
            .where(Contact.portal_invite_token_hash == hash_invite_token(setup_token))
            .with_for_update()
        )
        if contact is None:
            raise ValidationError(_INVALID_INVITE)

        if not contact.portal_invite_is_valid():
            contact.portal_invite_token_hash = None
            contact.portal_invite_expires_at = None
            await db.commit()
            logger.info("Expired portal invitation presented for contact %s", contact.id)
            raise ValidationError(_INVALID_INVITE)

        contact.portal_password_hash = get_password_hash(new_password)
        contact.has_portal_access = True
        contact.is_portal_active = True
        contact.portal_invite_token_hash = None
        contact.portal_invite_expires_at = None
        await db.commit()
        logger.info("Portal account set up for contact %s", contact.id)
        return contact

    @staticmethod
    async def revoke_portal_access(db: AsyncSession, contact_id: int) -> Contact:
        contact = await db.get(Contact, contact_id)
        if contact is None:
            raise NotFoundError("Contact not found")
        contact.has_portal_access = False
        contact.is_portal_active = False
        contact.portal_password_hash = None
        contact.portal_invite_token_hash = None
        contact.portal_invite_expires_at = None
        await db.commit()
        logger.info("Portal access revoked for contact %s", contact_id)
        return contact

    # ── Staff users ─────────────────────────────────────────────────
    @staticmethod
    async def create_user(
        db: AsyncSession,
        name: str,
        email: str,
        password: str,
        role_id: int | None = None,
        legacy_role: str | None = None,
    ) -> User:
        email = _normalise_email(email)
        if await db.scalar(select(User.id).where(User.email == email)) is not None:
            raise ConflictError("Email already registered")

        role = None
        if role_id is not None:
            role = await db.get(Role, role_id)
            if role is None:
                raise NotFoundError("Role not found")

        user = User(
            name=name,
            email=email,
            hashed_password=get_password_hash(password),
            role=role,
            legacy_role=role.name if role is not None else legacy_role,
        )
        db.add(user)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictError("Email already registered") from None
        logger.info("User created: %s", email)
        return user

    @staticmethod
    async def get_user(db: AsyncSession, user_id: int) -> User:
        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    @staticmethod
    async def list_users(db: AsyncSession) -> list[User]:
        result = await db.scalars(select(User).order_by(User.name, User.id))
        return list(result.all())


auth_service = AuthService()
