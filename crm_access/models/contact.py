"""
Account & Contact models: portal principals.

Contacts never share the users table. Portal access is enabled by
exchanging a single-use invitation for a first password.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from crm_access.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Account(Base):
    __tablename__ = "accounts"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    name: str = Column(String(200), nullable=False)  # type: ignore[assignment]
    created_at: datetime = Column(DateTime(timezone=True), default=_utcnow)  # type: ignore[assignment]

    contacts = relationship("Contact", back_populates="account", cascade="all, delete-orphan")


class Contact(Base):
    __tablename__ = "contacts"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    account_id: int = Column(  # type: ignore[assignment]
        Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    first_name: str = Column(String(100), nullable=False)  # type: ignore[assignment]
    last_name: str = Column(String(100), nullable=False)  # type: ignore[assignment]
    email: str = Column(String(320), nullable=False, index=True)  # type: ignore[assignment]
    phone: str | None = Column(String(30), nullable=True)  # type: ignore[assignment]

    # Portal
    has_portal_access: bool = Column(Boolean, default=False, server_default="0")  # type: ignore[assignment]
    is_portal_active: bool = Column(Boolean, default=True, server_default="1")  # type: ignore[assignment]
    portal_password_hash: str | None = Column(String(128), nullable=True)  # type: ignore[assignment]
    portal_invite_token_hash: str | None = Column(  # type: ignore[assignment]
        String(64), nullable=True, unique=True, index=True
    )
    portal_invite_expires_at: datetime | None = Column(  # type: ignore[assignment]
        DateTime(timezone=True), nullable=True
    )
    last_portal_login: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]

    created_at: datetime = Column(DateTime(timezone=True), default=_utcnow)  # type: ignore[assignment]
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    account = relationship("Account", back_populates="contacts", lazy="selectin")

    @property
    def account_name(self) -> str | None:
        return self.account.name if self.account is not None else None

    def portal_invite_is_valid(self, now: datetime | None = None) -> bool:
        if not self.portal_invite_token_hash or self.portal_invite_expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        expires = self.portal_invite_expires_at
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return now < expires
