"""
Async client for the portal REST API, built on httpx.

``fetch_tasks`` reports connectivity explicitly as ``Online(items)`` or
``Offline(reason)``; what to show while offline is the caller's call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Union

import httpx

from crm_access.core.exceptions import (AuthenticationError, CRMAccessError,
                                        ValidationError)
from crm_access.portal.gate import PortalAuthGate
from crm_access.portal.store import SessionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Online:
    items: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class Offline:
    reason: str


TaskFeed = Union[Online, Offline]


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        for key in ("error", "detail"):
            if body.get(key):
                return str(body[key])
    return response.reason_phrase


class PortalClient:
    def __init__(
        self,
        base_url: str,
        store: SessionStore,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        api_prefix: str = "/api",
        timeout: float = 10.0,
    ):
        self._prefix = api_prefix.rstrip("/")
        self._http = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)
        self.gate = PortalAuthGate(store, self._probe)

    async def __aenter__(self) -> "PortalClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _probe(self, token: str) -> bool:
        response = await self._http.get(f"{self._prefix}/portal/tasks", headers=_bearer(token))
        return response.is_success

    # ── Session ─────────────────────────────────────────────────────
    async def start(self) -> None:
        await self.gate.initialize()

    async def sign_in(self, email: str, password: str) -> dict[str, Any]:
        """Log in and cache the session; returns the contact profile."""
        response = await self._http.post(
            f"{self._prefix}/portal/login", json={"email": email, "password": password}
        )
        if response.status_code in (401, 422):
            raise AuthenticationError(_detail(response))
        if not response.is_success:
            raise CRMAccessError(_detail(response))
        body = response.json()
        self.gate.login(body["token"], body["contact"])
        return body["contact"]

    async def setup_account(self, setup_token: str, password: str) -> str:
        response = await self._http.post(
            f"{self._prefix}/portal/setup", json={"token": setup_token, "password": password}
        )
        if response.status_code in (400, 422):
            raise ValidationError(_detail(response))
        if not response.is_success:
            raise CRMAccessError(_detail(response))
        return response.json()["message"]

    def sign_out(self) -> None:
        self.gate.logout()

    # ── Data ────────────────────────────────────────────────────────
    async def fetch_tasks(self) -> TaskFeed:
        token = self.gate.token
        if token is None:
            return Offline("Not signed in")
        try:
            response = await self._http.get(f"{self._prefix}/portal/tasks", headers=_bearer(token))
        except httpx.HTTPError as exc:
            logger.info("Portal task fetch failed: %s", exc)
            return Offline(f"Network error: {exc.__class__.__name__}")

        if response.status_code == 401:
            logger.info("Portal session rejected by the server; signing out")
            self.gate.logout()
            return Offline("Session expired")
        if not response.is_success:
            return Offline(f"Server responded {response.status_code}")
        return Online(items=response.json())
