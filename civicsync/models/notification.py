# File: civicsync/models/notification.py
from __future__ import annotations
from datetime import datetime, timedelta
from enum import Enum as PyEnum
from sqlalchemy import String, Boolean, DateTime, Enum, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from civicsync.core.config import settings
from civicsync.db.base import Base, utcnow
from civicsync.models.issue import Issue
from civicsync.models.user import User

class NotificationType(PyEnum):
    issue_created = "issue_created"
    issue_updated = "issue_updated"
    issue_resolved = "issue_resolved"
    issue_rejected = "issue_rejected"
    issue_assigned = "issue_assigned"
    comment_added = "comment_added"
    upvote_milestone = "upvote_milestone"

def _expiry() -> datetime:
    return utcnow() + timedelta(days=settings.notification_ttl_days)

class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    recipient_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    sender_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    type: Mapped[NotificationType] = mapped_column(Enum(NotificationType), nullable=False)
    issue_id: Mapped[int | None] = mapped_column(ForeignKey("issues.id", ondelete="CASCADE"), nullable=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(String(1000), nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false", nullable=False)
    link: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_expiry, nullable=False, index=True)

    sender: Mapped[User | None] = relationship(foreign_keys=[sender_id])
    issue: Mapped[Issue | None] = relationship()

Index("ix_notifications_recipient_read_created", Notification.recipient_id, Notification.is_read, Notification.created_at)
