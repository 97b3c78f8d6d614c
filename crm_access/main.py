"""
CRM Access: application entry point.

This is the **only** file that assembles the app.  All business logic
lives in the `api/`, `services/`, `models/`, and `core/` packages.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import select

from crm_access.api.api import api_router
from crm_access.core.config import settings
from crm_access.core.exceptions import register_exception_handlers
from crm_access.core.rate_limit import limiter
from crm_access.db.base import Base
from crm_access.db.session import async_session_factory, engine

# Ensure all models are imported so metadata.create_all can see them
from crm_access.models.contact import Account, Contact  # noqa: F401
from crm_access.models.role import Permission, Role  # noqa: F401
from crm_access.models.task import Task, TaskComment  # noqa: F401
from crm_access.models.user import User
from crm_access.services.auth_service import auth_service
from crm_access.services.rbac_service import ADMIN_ROLE, rbac_service

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


async def bootstrap(session_factory=async_session_factory) -> None:
    """Seed system RBAC and the first administrator. Safe to re-run."""
    async with session_factory() as session:
        if settings.INITIALIZE_RBAC_ON_STARTUP:
            await rbac_service.initialize_system_rbac(session)

        existing = await session.scalar(
            select(User).where(User.email == settings.FIRST_ADMIN_EMAIL.lower())
        )
        if existing is None:
            admin_role = await session.scalar(select(Role).where(Role.name == ADMIN_ROLE))
            await auth_service.create_user(
                session,
                name="System Administrator",
                email=settings.FIRST_ADMIN_EMAIL,
                password=settings.FIRST_ADMIN_PASSWORD,
                role_id=admin_role.id if admin_role is not None else None,
                legacy_role=ADMIN_ROLE,
            )
            logger.info(
                "Default admin created: %s (password: <redacted>)",
                settings.FIRST_ADMIN_EMAIL,
            )


# ── Lifespan ────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(_app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")

    await bootstrap()

    logger.info("CRM Access v%s started", settings.VERSION)
    yield
    await engine.dispose()
    logger.info("Shutdown complete")


# ── App factory ─────────────────────────────────────────────────────
def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.PROJECT_NAME,
        description="CRM role-based access control and client portal authentication",
        version=settings.VERSION,
        openapi_url=f"{settings.API_PREFIX}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Login rate limiting
    application.state.limiter = limiter
    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)  # type: ignore[arg-type]

    # Global exception handlers (prevent stack-trace leakage)
    register_exception_handlers(application)

    application.include_router(api_router, prefix=settings.API_PREFIX)

    @application.get(f"{settings.API_PREFIX}/health", tags=["health"])
    async def health() -> dict:
        return {"status": "ok", "version": settings.VERSION}

    return application


app = create_app()
