# File: civicsync/services/issue_store.py
"""Issue lifecycle: creation, updates with status history, deletion,
upvotes and comments.

Every operation takes the session and the caller explicitly and raises the
domain errors from ``civicsync.core.errors``. Side effects that must not fail
the operation (emails, notifications) are left to the caller.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from civicsync.core.errors import AuthorizationError, FieldError, NotFoundError, ValidationError
from civicsync.db.base import utcnow
from civicsync.models.comment import IssueComment
from civicsync.models.attachment import IssueImage
from civicsync.models.issue import Issue, IssueStatus
from civicsync.models.issue_activity import IssueStatusChange
from civicsync.models.notification import Notification
from civicsync.models.upvote import IssueUpvote
from civicsync.models.user import STAFF_ROLES, UserRole
from civicsync.schemas.issue import (
    CommentOut,
    GeoPoint,
    ImageOut,
    IssueOut,
    LocationOut,
    StatusChangeOut,
)
from civicsync.services import storage
from civicsync.services.users import display, display_map, get_user
from civicsync.services.validation import check_comment, check_issue

logger = logging.getLogger(__name__)

REJECTION_REASON_MAX = 500


@dataclass
class UpdateOutcome:
    issue: Issue
    previous_status: IssueStatus
    status_changed: bool = False
    assignee_changed: bool = False


def _role(caller_role) -> Optional[UserRole]:
    if caller_role is None or isinstance(caller_role, UserRole):
        return caller_role
    try:
        return UserRole(caller_role)
    except ValueError:
        return None


def get_issue(db: Session, issue_id: int) -> Issue:
    issue = db.query(Issue).filter(Issue.id == issue_id).first()
    if not issue:
        raise NotFoundError("Issue not found")
    return issue


def create_issue(db: Session, data: dict, images: Sequence[dict], reporter_id: int) -> Issue:
    """Persist a new pending issue.

    ``images`` are ``{"url", "public_id"}`` dicts for files the caller has
    already stored; on a validation failure the caller owns their cleanup.
    """
    clean, errors = check_issue(data)
    if errors:
        raise ValidationError(errors)

    obj = Issue(
        title=clean["title"],
        description=clean["description"],
        category=clean["category"],
        priority=clean["priority"],
        status=IssueStatus.pending,
        address=clean["address"],
        city=clean.get("city"),
        state=clean.get("state"),
        zip_code=clean.get("zip_code"),
        lng=clean["lng"],
        lat=clean["lat"],
        created_by_id=reporter_id,
    )
    for img in images:
        obj.images.append(IssueImage(url=img["url"], public_id=img["public_id"]))
    db.add(obj)
    db.commit()
    db.refresh(obj)
    logger.info("issue %s created by user %s", obj.id, reporter_id)
    return obj


def update_issue(db: Session, issue_id: int, caller_id: int, caller_role, patch: dict) -> UpdateOutcome:
    """Apply ``patch`` (only the keys the client sent) on behalf of the caller.

    The reporter and staff/admin may update; only staff/admin may assign.
    A status different from the current one appends exactly one history
    entry and stamps ``resolved_at`` when the issue becomes resolved.
    """
    issue = get_issue(db, issue_id)
    role = _role(caller_role)
    is_staff = role in STAFF_ROLES
    if issue.created_by_id != caller_id and not is_staff:
        raise AuthorizationError("Not authorized to update this issue")
    if "assigned_to" in patch and not is_staff:
        raise AuthorizationError("Only municipal staff or admins can assign issues")

    clean, errors = check_issue(patch, partial=True)

    assignee_id = patch.get("assigned_to")
    if "assigned_to" in patch and assignee_id is not None and get_user(db, assignee_id) is None:
        errors.append(FieldError("assignedTo", "User not found"))

    rejection_reason = patch.get("rejection_reason")
    if rejection_reason is not None and len(str(rejection_reason).strip()) > REJECTION_REASON_MAX:
        errors.append(FieldError("rejectionReason", f"Rejection reason cannot exceed {REJECTION_REASON_MAX} characters"))
    if errors:
        raise ValidationError(errors)

    outcome = UpdateOutcome(issue=issue, previous_status=issue.status)

    new_status = clean.pop("status", None)
    note = clean.pop("status_note", None)
    if new_status is not None and new_status != issue.status:
        issue.status_history.append(
            IssueStatusChange(status=new_status.value, changed_by_id=caller_id, note=note, changed_at=utcnow())
        )
        issue.status = new_status
        if new_status == IssueStatus.resolved:
            issue.resolved_at = utcnow()
        outcome.status_changed = True

    for key, value in clean.items():
        setattr(issue, key, value)
    if rejection_reason is not None:
        issue.rejection_reason = str(rejection_reason).strip() or None
    if "assigned_to" in patch and issue.assigned_to_id != assignee_id:
        issue.assigned_to_id = assignee_id
        outcome.assignee_changed = True

    issue.updated_at = utcnow()
    db.commit()
    db.refresh(issue)
    logger.info(
        "issue %s updated by user %s (status %s -> %s)",
        issue.id, caller_id, outcome.previous_status.value, issue.status.value,
    )
    return outcome


def delete_issue(db: Session, issue_id: int, caller_id: int, caller_role) -> None:
    issue = get_issue(db, issue_id)
    if issue.created_by_id != caller_id and _role(caller_role) != UserRole.admin:
        raise AuthorizationError("Not authorized to delete this issue")

    for image in list(issue.images):
        try:
            storage.delete(image.public_id)
        except Exception:
            logger.error("Error deleting image %s of issue %s", image.public_id, issue.id, exc_info=True)

    db.query(Notification).filter(Notification.issue_id == issue.id).delete(synchronize_session=False)
    db.delete(issue)
    db.commit()
    logger.info("issue %s deleted by user %s", issue_id, caller_id)


def toggle_upvote(db: Session, issue_id: int, user_id: int) -> tuple[int, bool]:
    """Add the user's upvote if absent, remove it if present.

    Returns ``(upvote_count, user_upvoted)``. Applying it twice restores the
    original state.
    """
    issue = get_issue(db, issue_id)
    existing = db.get(IssueUpvote, (issue_id, user_id))
    if existing is not None:
        db.delete(existing)
        upvoted = False
    else:
        db.add(IssueUpvote(issue_id=issue_id, user_id=user_id))
        upvoted = True
    try:
        db.commit()
    except IntegrityError:
        # a concurrent request from the same user inserted first
        db.rollback()
        upvoted = True
    db.refresh(issue)
    return issue.upvote_count, upvoted


def add_comment(db: Session, issue_id: int, author_id: int, text) -> list[CommentOut]:
    issue = get_issue(db, issue_id)
    value, errors = check_comment(text)
    if errors:
        raise ValidationError(errors)
    issue.comments.append(IssueComment(user_id=author_id, text=value, created_at=utcnow()))
    db.commit()
    db.refresh(issue)
    people = display_map(db, (c.user_id for c in issue.comments), include_email=False)
    return [_comment_out(c, people) for c in issue.comments]


# ===================================================================
# Serialization
# ===================================================================

def _comment_out(comment: IssueComment, people: dict) -> CommentOut:
    return CommentOut(
        id=comment.id,
        user=people.get(comment.user_id),
        text=comment.text,
        created_at=comment.created_at,
    )


def serialize_issues(db: Session, issues: Iterable[Issue],
                     distances: Optional[dict[int, float]] = None) -> list[IssueOut]:
    issues = list(issues)
    ids = set()
    for issue in issues:
        ids.update(c.user_id for c in issue.comments)
        ids.update(h.changed_by_id for h in issue.status_history)
    people = display_map(db, ids, include_email=False)
    distances = distances or {}
    return [_issue_out(issue, people, distances.get(issue.id)) for issue in issues]


def serialize_issue(db: Session, issue: Issue) -> IssueOut:
    return serialize_issues(db, [issue])[0]


def _issue_out(issue: Issue, people: dict, distance: Optional[float]) -> IssueOut:
    return IssueOut(
        id=issue.id,
        title=issue.title,
        description=issue.description,
        category=issue.category,
        status=issue.status.value,
        priority=issue.priority.value,
        location=LocationOut(
            address=issue.address,
            city=issue.city,
            state=issue.state,
            zip_code=issue.zip_code,
            coordinates=GeoPoint(coordinates=[issue.lng, issue.lat]),
        ),
        images=[ImageOut(url=i.url, public_id=i.public_id, uploaded_at=i.uploaded_at) for i in issue.images],
        reported_by=display(issue.reporter),
        assigned_to=display(issue.assignee),
        upvotes=sorted(issue.upvoter_ids),
        upvote_count=issue.upvote_count,
        comments=[_comment_out(c, people) for c in issue.comments],
        status_history=[
            StatusChangeOut(
                status=h.status,
                changed_by=people.get(h.changed_by_id),
                changed_at=h.changed_at,
                note=h.note,
            )
            for h in issue.status_history
        ],
        rejection_reason=issue.rejection_reason,
        resolved_at=issue.resolved_at,
        created_at=issue.created_at,
        updated_at=issue.updated_at,
        distance=round(distance, 1) if distance is not None else None,
    )
