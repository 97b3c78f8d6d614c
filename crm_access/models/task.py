"""
Task & TaskComment models: the slice of the task domain the portal reads.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (JSON, Boolean, Column, DateTime, ForeignKey, Index,
                        Integer, String, Text)
from sqlalchemy.orm import relationship

from crm_access.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Task(Base):
    __tablename__ = "tasks"
    __table_args__ = (Index("ix_tasks_account_created", "account_id", "created_at"),)

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    title: str = Column(String(200), nullable=False)  # type: ignore[assignment]
    description: str = Column(Text, nullable=False, default="")  # type: ignore[assignment]
    status: str = Column(String(20), nullable=False, default="To Do")  # type: ignore[assignment]
    # To Do | In Progress | Completed | Cancelled
    progress: int = Column(Integer, nullable=False, default=0)  # type: ignore[assignment]
    account_id: int | None = Column(  # type: ignore[assignment]
        Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=True
    )
    assigned_contact_ids: list[int] = Column(JSON, nullable=False, default=list)  # type: ignore[assignment]
    created_at: datetime = Column(DateTime(timezone=True), default=_utcnow)  # type: ignore[assignment]
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    comments = relationship(
        "TaskComment",
        back_populates="task",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="TaskComment.created_at",
    )

    def is_assigned_to(self, contact_id: int) -> bool:
        return contact_id in (self.assigned_contact_ids or [])


class TaskComment(Base):
    __tablename__ = "task_comments"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    task_id: int = Column(  # type: ignore[assignment]
        Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    content: str = Column(Text, nullable=False)  # type: ignore[assignment]
    author_type: str = Column(String(10), nullable=False, default="internal")  # type: ignore[assignment]
    # internal | external
    author_id: int | None = Column(Integer, nullable=True)  # type: ignore[assignment]
    author_name: str = Column(String(200), nullable=False)  # type: ignore[assignment]
    author_email: str | None = Column(String(320), nullable=True)  # type: ignore[assignment]
    is_private: bool = Column(Boolean, default=False, server_default="0")  # type: ignore[assignment]
    created_at: datetime = Column(DateTime(timezone=True), default=_utcnow)  # type: ignore[assignment]

    task = relationship("Task", back_populates="comments")
