"""
PortalAuthGate: the portal's client-side session state.

On start-up a cached session is only trusted after the backend accepts its
token; any doubt (rejection, network failure, unreadable cache) clears the
cache and leaves the gate logged out.

Each ``login``/``logout`` bumps ``generation``. A probe started under an
older generation has its result dropped, so a slow start-up check can never
resurrect a session the user has since left.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any, Optional

from crm_access.portal.store import SessionStore

logger = logging.getLogger(__name__)

Probe = Callable[[str], Awaitable[bool]]


class PortalAuthGate:
    def __init__(self, store: SessionStore, probe: Probe):
        self._store = store
        self._probe = probe
        self._token: Optional[str] = None
        self._contact: Optional[dict[str, Any]] = None
        self._loading = True
        self.generation = 0

    # ── State ───────────────────────────────────────────────────────
    @property
    def contact(self) -> Optional[dict[str, Any]]:
        return self._contact

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def is_authenticated(self) -> bool:
        return self._contact is not None

    @property
    def loading(self) -> bool:
        return self._loading

    # ── Transitions ─────────────────────────────────────────────────
    async def initialize(self) -> None:
        """Restore a cached session if the backend still accepts it. Never raises."""
        started_at = self.generation
        try:
            session = self._store.load()
            if session is None:
                # unreadable or half-written documents load as None too
                self._reset()
                return

            try:
                accepted = await self._probe(session.token)
            except Exception as exc:
                logger.info("Portal session probe failed: %s", exc)
                accepted = False

            if self.generation != started_at:
                logger.debug("Discarding stale portal session probe result")
                return
            if accepted:
                self._token = session.token
                self._contact = dict(session.contact)
                logger.info("Portal session restored for contact %s", session.contact.get("id"))
            else:
                self._reset()
        except Exception:
            logger.exception("Portal session restore failed; starting logged out")
            if self.generation == started_at:
                self._reset()
        finally:
            self._loading = False

    def login(self, token: str, contact: dict[str, Any]) -> None:
        if not token or not isinstance(contact, dict):
            raise ValueError("login requires a token and a contact profile")
        self.generation += 1
        self._store.save(token, contact)
        self._token = token
        self._contact = dict(contact)

    def logout(self) -> None:
        self.generation += 1
        self._reset()

    def _reset(self) -> None:
        self._token = None
        self._contact = None
        try:
            self._store.clear()
        except OSError as exc:
            logger.warning("Could not clear cached portal session: %s", exc)
