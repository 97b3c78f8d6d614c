"""
Shared test fixtures for the CRM access test suite.

Every test gets a fresh in-memory SQLite database (aiosqlite + StaticPool)
wired into the app through the ``get_db`` dependency override.
"""

import os
import sys
from typing import AsyncGenerator

import pytest

# Ensure project root is importable
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# Override environment BEFORE importing application modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CORS_ORIGINS"] = '["*"]'
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["INITIALIZE_RBAC_ON_STARTUP"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key-not-for-production"

from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from crm_access.api.deps import get_db
from crm_access.core.security import PrincipalType, create_token, get_password_hash
from crm_access.db.base import Base
from crm_access.db.session import build_engine
from crm_access.main import app
from crm_access.models.contact import Account, Contact
from crm_access.models.role import Role
from crm_access.models.user import User
from crm_access.services.auth_service import auth_service
from crm_access.services.rbac_service import rbac_service

PORTAL_PASSWORD = "portal-pass-1"
STAFF_PASSWORD = "staff-pass-1"


@pytest.fixture(autouse=True)
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """Create all tables on a fresh engine and point the app at it."""
    test_engine = build_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

    async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db

    yield factory

    app.dependency_overrides.pop(get_db, None)
    await test_engine.dispose()


@pytest.fixture
async def async_client() -> AsyncGenerator[AsyncClient, None]:
    """Return a httpx AsyncClient wired to the app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Return a raw database session for direct queries in tests."""
    async with session_factory() as session:
        yield session


# ── RBAC / staff helpers ────────────────────────────────────────────
@pytest.fixture
async def seeded_rbac(db_session: AsyncSession) -> dict[str, Role]:
    """System permissions and roles, keyed by role name."""
    await rbac_service.initialize_system_rbac(db_session)
    roles = await db_session.scalars(select(Role))
    return {r.name: r for r in roles.all()}


@pytest.fixture
def make_user(db_session: AsyncSession):
    """Factory creating a staff user with an optional linked or legacy role."""

    async def _make(
        email: str,
        role: Role | None = None,
        legacy_role: str | None = None,
        password: str = STAFF_PASSWORD,
    ) -> User:
        return await auth_service.create_user(
            db_session,
            name=email.split("@")[0].title(),
            email=email,
            password=password,
            role_id=role.id if role is not None else None,
            legacy_role=legacy_role,
        )

    return _make


def staff_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_token(user.id, PrincipalType.STAFF)}"}


def portal_headers(contact: Contact) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_token(contact.id, PrincipalType.PORTAL)}"}


@pytest.fixture
async def admin_user(seeded_rbac, make_user) -> User:
    return await make_user("admin@crm.test", role=seeded_rbac["admin"])


@pytest.fixture
async def admin_headers(admin_user: User) -> dict[str, str]:
    return staff_headers(admin_user)


# ── Portal helpers ──────────────────────────────────────────────────
@pytest.fixture
async def account(db_session: AsyncSession) -> Account:
    acct = Account(name="Acme Industries")
    db_session.add(acct)
    await db_session.commit()
    return acct


@pytest.fixture
def make_contact(db_session: AsyncSession, account: Account):
    """Factory creating a contact; ``portal=True`` gives it a working password."""

    async def _make(email: str, portal: bool = False, **fields) -> Contact:
        contact = Contact(
            account_id=account.id,
            first_name=fields.pop("first_name", "Pat"),
            last_name=fields.pop("last_name", "Client"),
            email=email,
            has_portal_access=portal,
            is_portal_active=fields.pop("is_portal_active", True),
            portal_password_hash=get_password_hash(PORTAL_PASSWORD) if portal else None,
            **fields,
        )
        db_session.add(contact)
        await db_session.commit()
        await db_session.refresh(contact)
        return contact

    return _make


@pytest.fixture
async def portal_contact(make_contact) -> Contact:
    return await make_contact("client@acme.test", portal=True)
