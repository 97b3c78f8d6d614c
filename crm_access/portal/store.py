"""
Persistent portal session storage.

A stored session is the pair (bearer token, contact profile). The two are
always written together and cleared together; a document missing either
half loads as ``None``.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredSession:
    token: str
    contact: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_document(cls, doc: object) -> Optional["StoredSession"]:
        if not isinstance(doc, dict):
            return None
        token = doc.get("token")
        contact = doc.get("contact")
        if not isinstance(token, str) or not token:
            return None
        if not isinstance(contact, dict) or contact.get("id") is None:
            return None
        return cls(token=token, contact=contact)

    def to_document(self) -> dict[str, Any]:
        return {"token": self.token, "contact": self.contact}


class SessionStore(Protocol):
    def load(self) -> Optional[StoredSession]: ...

    def save(self, token: str, contact: dict[str, Any]) -> None: ...

    def clear(self) -> None: ...


class MemorySessionStore:
    """In-process store; nothing survives the interpreter."""

    def __init__(self, session: Optional[StoredSession] = None):
        self._session = session

    def load(self) -> Optional[StoredSession]:
        return self._session

    def save(self, token: str, contact: dict[str, Any]) -> None:
        self._session = StoredSession(token=token, contact=dict(contact))

    def clear(self) -> None:
        self._session = None


class FileSessionStore:
    """One JSON document on disk, replaced atomically on every save."""

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)

    def load(self) -> Optional[StoredSession]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Cannot read portal session %s: %s", self.path, exc)
            return None
        try:
            doc = json.loads(raw)
        except ValueError:
            logger.warning("Discarding corrupt portal session file %s", self.path)
            return None
        return StoredSession.from_document(doc)

    def save(self, token: str, contact: dict[str, Any]) -> None:
        session = StoredSession(token=token, contact=dict(contact))
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(session.to_document(), fh)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp_path)
            raise

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
