# File: civicsync/services/notifications.py
"""In-app notification records.

Notifications are a side channel: nothing here is authoritative issue state,
and the reactions at the bottom of this module never raise.
"""
import logging
import math
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from civicsync.core.errors import NotFoundError, ValidationError
from civicsync.db.base import utcnow
from civicsync.models.issue import Issue, IssueStatus
from civicsync.models.notification import Notification, NotificationType
from civicsync.models.push import PushSubscription
from civicsync.services import notify_push
from civicsync.services.validation import check_page

logger = logging.getLogger(__name__)

UPVOTE_MILESTONES = (10, 25, 50, 100)


def create_notification(
    db: Session,
    recipient_id: int,
    type: NotificationType,
    title: str,
    message: str,
    sender_id: Optional[int] = None,
    issue_id: Optional[int] = None,
    link: Optional[str] = None,
) -> Notification:
    obj = Notification(
        recipient_id=recipient_id,
        sender_id=sender_id,
        type=type,
        issue_id=issue_id,
        title=title,
        message=message,
        link=link,
    )
    db.add(obj)
    db.commit()
    db.refresh(obj)
    logger.info("notification %s (%s) created for user %s", obj.id, type.value, recipient_id)
    _push(db, obj)
    return obj


def _push(db: Session, obj: Notification) -> None:
    subs = db.query(PushSubscription).filter(PushSubscription.user_id == obj.recipient_id).all()
    for s in subs:
        notify_push.send_push(
            {"endpoint": s.endpoint, "keys": {"p256dh": s.p256dh, "auth": s.auth}},
            {"title": obj.title, "body": obj.message, "url": obj.link},
        )


def _visible(db: Session, recipient_id: int, now: datetime):
    return db.query(Notification).filter(
        Notification.recipient_id == recipient_id,
        Notification.expires_at > now,
    )


def list_notifications(db: Session, recipient_id: int, page: int = 1, limit: int = 20,
                       unread_only: bool = False) -> dict:
    errors = check_page(page, limit)
    if errors:
        raise ValidationError(errors)
    now = utcnow()
    q = _visible(db, recipient_id, now)
    if unread_only:
        q = q.filter(Notification.is_read.is_(False))
    total = q.count()
    items = (
        q.order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    unread = _visible(db, recipient_id, now).filter(Notification.is_read.is_(False)).count()
    return {
        "items": items,
        "total_count": total,
        "total_pages": math.ceil(total / limit),
        "unread_count": unread,
    }


def _owned(db: Session, notification_id: int, recipient_id: int) -> Notification:
    obj = _visible(db, recipient_id, utcnow()).filter(Notification.id == notification_id).first()
    if not obj:
        raise NotFoundError("Notification not found")
    return obj


def mark_as_read(db: Session, notification_id: int, recipient_id: int) -> Notification:
    obj = _owned(db, notification_id, recipient_id)
    obj.is_read = True
    db.commit()
    db.refresh(obj)
    return obj


def mark_all_as_read(db: Session, recipient_id: int) -> int:
    updated = (
        db.query(Notification)
        .filter(Notification.recipient_id == recipient_id, Notification.is_read.is_(False))
        .update({Notification.is_read: True}, synchronize_session=False)
    )
    db.commit()
    return updated


def delete_notification(db: Session, notification_id: int, recipient_id: int) -> None:
    obj = _owned(db, notification_id, recipient_id)
    db.delete(obj)
    db.commit()


def purge_expired(db: Session, now: Optional[datetime] = None) -> int:
    now = now or utcnow()
    deleted = (
        db.query(Notification)
        .filter(Notification.expires_at <= now)
        .delete(synchronize_session=False)
    )
    db.commit()
    logger.info("purged %s expired notifications", deleted)
    return deleted


# ===================================================================
# Reactions to issue events (called from background tasks)
# ===================================================================

def _issue_link(issue_id: int) -> str:
    return f"/issues/{issue_id}"


def notify_status_change(db: Session, issue: Issue, new_status: IssueStatus, actor_id: int) -> Optional[Notification]:
    if issue.created_by_id == actor_id:
        return None
    kind = {
        IssueStatus.resolved: NotificationType.issue_resolved,
        IssueStatus.rejected: NotificationType.issue_rejected,
    }.get(new_status, NotificationType.issue_updated)
    label = new_status.value.replace("_", " ")
    return create_notification(
        db,
        recipient_id=issue.created_by_id,
        type=kind,
        title=f"Issue {label}",
        message=f'Your issue "{issue.title}" is now {label}.',
        sender_id=actor_id,
        issue_id=issue.id,
        link=_issue_link(issue.id),
    )


def notify_assignment(db: Session, issue: Issue, actor_id: int) -> Optional[Notification]:
    if issue.assigned_to_id is None or issue.assigned_to_id == actor_id:
        return None
    return create_notification(
        db,
        recipient_id=issue.assigned_to_id,
        type=NotificationType.issue_assigned,
        title="Issue assigned",
        message=f'Issue #{issue.id} "{issue.title}" was assigned to you.',
        sender_id=actor_id,
        issue_id=issue.id,
        link=_issue_link(issue.id),
    )


def notify_comment(db: Session, issue: Issue, author_id: int, author_name: str) -> Optional[Notification]:
    if issue.created_by_id == author_id:
        return None
    return create_notification(
        db,
        recipient_id=issue.created_by_id,
        type=NotificationType.comment_added,
        title="New comment",
        message=f'{author_name} commented on "{issue.title}".',
        sender_id=author_id,
        issue_id=issue.id,
        link=_issue_link(issue.id),
    )


def notify_upvote_milestone(db: Session, issue: Issue, upvote_count: int) -> Optional[Notification]:
    if upvote_count not in UPVOTE_MILESTONES:
        return None
    title = f"{upvote_count} upvotes"
    # each milestone is announced once, however often the count crosses it
    already = (
        db.query(Notification.id)
        .filter(
            Notification.issue_id == issue.id,
            Notification.type == NotificationType.upvote_milestone,
            Notification.title == title,
        )
        .first()
    )
    if already:
        return None
    return create_notification(
        db,
        recipient_id=issue.created_by_id,
        type=NotificationType.upvote_milestone,
        title=title,
        message=f'Your issue "{issue.title}" reached {upvote_count} upvotes.',
        issue_id=issue.id,
        link=_issue_link(issue.id),
    )
