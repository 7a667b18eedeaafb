# File: civicsync/models/issue.py
from __future__ import annotations
from enum import Enum as PyEnum
from datetime import datetime
from sqlalchemy import String, Float, Enum, DateTime, ForeignKey, Index, func, select
from sqlalchemy.orm import Mapped, mapped_column, relationship, column_property
from civicsync.db.base import Base, utcnow
from civicsync.models.attachment import IssueImage
from civicsync.models.comment import IssueComment
from civicsync.models.issue_activity import IssueStatusChange
from civicsync.models.upvote import IssueUpvote
from civicsync.models.user import User

class IssueStatus(PyEnum):
    pending = "pending"
    in_progress = "in_progress"
    resolved = "resolved"
    rejected = "rejected"

class IssuePriority(PyEnum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"

ISSUE_CATEGORIES = (
    "Road & Transportation",
    "Water & Sanitation",
    "Electricity",
    "Garbage & Waste",
    "Street Lights",
    "Parks & Recreation",
    "Public Safety",
    "Building & Infrastructure",
    "Pollution",
    "Other",
)

class Issue(Base):
    __tablename__ = "issues"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(100), index=True)
    description: Mapped[str] = mapped_column(String(1000))
    category: Mapped[str] = mapped_column(String(60), index=True)
    status: Mapped[IssueStatus] = mapped_column(Enum(IssueStatus), default=IssueStatus.pending, nullable=False)
    priority: Mapped[IssuePriority] = mapped_column(Enum(IssuePriority), default=IssuePriority.medium, nullable=False)

    lat: Mapped[float] = mapped_column(Float, nullable=False)
    lng: Mapped[float] = mapped_column(Float, nullable=False)
    address: Mapped[str] = mapped_column(String(300), nullable=False)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    state: Mapped[str | None] = mapped_column(String(100), nullable=True)
    zip_code: Mapped[str | None] = mapped_column(String(20), nullable=True)

    created_by_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True, nullable=False)
    assigned_to_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), index=True, nullable=True)

    rejection_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    reporter: Mapped[User] = relationship(foreign_keys=[created_by_id], lazy="joined")
    assignee: Mapped[User | None] = relationship(foreign_keys=[assigned_to_id], lazy="joined")

    images: Mapped[list[IssueImage]] = relationship(
        order_by=IssueImage.id, cascade="all, delete-orphan"
    )
    comments: Mapped[list[IssueComment]] = relationship(
        order_by=(IssueComment.created_at, IssueComment.id), cascade="all, delete-orphan"
    )
    status_history: Mapped[list[IssueStatusChange]] = relationship(
        order_by=(IssueStatusChange.changed_at, IssueStatusChange.id), cascade="all, delete-orphan"
    )
    upvotes: Mapped[list[IssueUpvote]] = relationship(cascade="all, delete-orphan")

    # derived from the upvote rows; there is no column to write to
    upvote_count: Mapped[int] = column_property(
        select(func.count(IssueUpvote.user_id))
        .where(IssueUpvote.issue_id == id)
        .correlate_except(IssueUpvote)
        .scalar_subquery()
    )

    @property
    def upvoter_ids(self) -> set[int]:
        return {u.user_id for u in self.upvotes}

Index("ix_issues_status_created_at", Issue.status, Issue.created_at)
Index("ix_issues_lat_lng", Issue.lat, Issue.lng)
