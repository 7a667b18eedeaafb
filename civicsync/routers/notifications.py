# File: civicsync/routers/notifications.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from civicsync.core.security import get_current_user
from civicsync.db.session import get_db
from civicsync.models.notification import Notification
from civicsync.models.user import User
from civicsync.schemas.common import envelope
from civicsync.schemas.notification import IssueBrief, NotificationOut
from civicsync.services import notifications
from civicsync.services.users import display

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


def _out(n: Notification) -> NotificationOut:
    issue = n.issue
    return NotificationOut(
        id=n.id,
        recipient=n.recipient_id,
        sender=display(n.sender, include_email=False),
        type=n.type.value,
        issue=IssueBrief(id=issue.id, title=issue.title, status=issue.status.value) if issue else None,
        title=n.title,
        message=n.message,
        is_read=n.is_read,
        link=n.link,
        created_at=n.created_at,
        expires_at=n.expires_at,
    )


@router.get("")
def list_notifications(
    page: int = Query(default=1),
    limit: int = Query(default=20),
    unread_only: bool = Query(default=False, alias="unreadOnly"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    result = notifications.list_notifications(db, user.id, page=page, limit=limit, unread_only=unread_only)
    items = [_out(n) for n in result["items"]]
    return envelope(
        items,
        count=len(items),
        total=result["total_count"],
        totalPages=result["total_pages"],
        currentPage=page,
        unreadCount=result["unread_count"],
    )


@router.put("/read-all")
def read_all(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    updated = notifications.mark_all_as_read(db, user.id)
    return envelope({"modifiedCount": updated}, message="All notifications marked as read")


@router.put("/{notification_id}/read")
def read_one(notification_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    n = notifications.mark_as_read(db, notification_id, user.id)
    return envelope(_out(n), message="Notification marked as read")


@router.delete("/{notification_id}")
def delete_one(notification_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    notifications.delete_notification(db, notification_id, user.id)
    return envelope({}, message="Notification deleted")
