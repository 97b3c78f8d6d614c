"""
Centralised application settings loaded from environment / .env file.

Uses pydantic-settings so every value can be overridden via env vars
or the .env file at the project root.
"""

from __future__ import annotations

import logging

from pydantic import field_validator
from pydantic_settings import BaseSettings

_DEFAULT_SECRET = "CHANGE-ME-TO-A-RANDOM-64-CHAR-HEX-STRING-IN-PRODUCTION"


class Settings(BaseSettings):
    # ── Project ──────────────────────────────────────────────────────
    PROJECT_NAME: str = "CRM Access"
    VERSION: str = "1.0.0"
    API_PREFIX: str = "/api"
    FRONTEND_URL: str = "http://localhost:5173"

    # ── Database (async driver URL) ─────────────────────────────────
    DATABASE_URL: str = "sqlite+aiosqlite:///./crm_access.db"

    # ── Tokens ───────────────────────────────────────────────────────
    SECRET_KEY: str = _DEFAULT_SECRET
    ALGORITHM: str = "HS256"
    STAFF_TOKEN_EXPIRE_MINUTES: int = 24 * 60
    PORTAL_TOKEN_EXPIRE_MINUTES: int = 24 * 60

    # ── Portal onboarding ────────────────────────────────────────────
    PORTAL_INVITE_EXPIRE_HOURS: int = 7 * 24
    PORTAL_MIN_PASSWORD_LENGTH: int = 6

    # ── Rate limits (slowapi syntax) ─────────────────────────────────
    LOGIN_RATE_LIMIT: str = "5/minute"
    PORTAL_LOGIN_RATE_LIMIT: str = "100/15minutes"
    RATE_LIMIT_ENABLED: bool = True

    # ── CORS ─────────────────────────────────────────────────────────
    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors(cls, v: object) -> list[str]:
        if isinstance(v, str) and not v.lstrip().startswith("["):
            return [o.strip() for o in v.split(",") if o.strip()]
        return v  # type: ignore[return-value]

    # ── Logging ──────────────────────────────────────────────────────
    LOG_LEVEL: str = "INFO"

    # ── Bootstrap ────────────────────────────────────────────────────
    INITIALIZE_RBAC_ON_STARTUP: bool = True
    FIRST_ADMIN_EMAIL: str = "admin@crm.local"
    FIRST_ADMIN_PASSWORD: str = "changeme123"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "ignore",
    }


settings = Settings()

if settings.SECRET_KEY == _DEFAULT_SECRET:
    logging.getLogger("crm_access.core.config").warning(
        "Running with the default INSECURE secret key. "
        "Set SECRET_KEY in the environment or .env file."
    )
