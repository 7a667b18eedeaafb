# File: civicsync/routers/issues.py
import logging
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Query, Request, UploadFile
from sqlalchemy.orm import Session

from civicsync.core.errors import DependencyError, FieldError, ValidationError
from civicsync.core.ratelimit import limiter
from civicsync.core.security import get_current_user
from civicsync.db import session as db_session
from civicsync.db.session import get_db
from civicsync.models.issue import Issue, IssueStatus
from civicsync.models.user import User
from civicsync.schemas.common import envelope
from civicsync.schemas.issue import CommentIn, IssuePatch, UpvoteOut
from civicsync.services import issue_query, issue_store, notifications, notify_email, storage
from civicsync.services.users import get_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/issues", tags=["issues"])

MAX_FILES = 5
MAX_BYTES = 5 * 1024 * 1024


# ===================================================================
# Background reactions; they own their session and never raise
# ===================================================================

def _send_report_confirmation_safe(issue_id: int):
    db = db_session.SessionLocal()
    try:
        issue = db.query(Issue).filter(Issue.id == issue_id).first()
        if issue and issue.reporter and issue.reporter.email:
            notify_email.send_issue_created(
                issue.reporter.email,
                issue.reporter.name,
                issue.id,
                issue.title,
                issue.category,
                issue.status.value,
                issue.address,
            )
    except Exception:
        logger.error("Error in background report confirmation for issue %s", issue_id, exc_info=True)
    finally:
        db.close()


def _send_update_notifications_safe(issue_id: int, actor_id: int, new_status: Optional[str], assignee_changed: bool):
    """``new_status`` is the status this update set, or None when it left the status alone."""
    db = db_session.SessionLocal()
    try:
        issue = db.query(Issue).filter(Issue.id == issue_id).first()
        if not issue:
            return
        if new_status is not None:
            status = IssueStatus(new_status)
            reporter = issue.reporter
            if reporter and reporter.email:
                notify_email.send_status_update(
                    reporter.email, reporter.name, issue.id, issue.title, issue.category, status.value
                )
            notifications.notify_status_change(db, issue, status, actor_id)
        if assignee_changed:
            notifications.notify_assignment(db, issue, actor_id)
    except Exception:
        logger.error("Error in background update notifications for issue %s", issue_id, exc_info=True)
    finally:
        db.close()


def _send_comment_notification_safe(issue_id: int, author_id: int):
    db = db_session.SessionLocal()
    try:
        issue = db.query(Issue).filter(Issue.id == issue_id).first()
        author = get_user(db, author_id)
        if issue and author:
            notifications.notify_comment(db, issue, author.id, author.name)
    except Exception:
        logger.error("Error in background comment notification for issue %s", issue_id, exc_info=True)
    finally:
        db.close()


def _send_upvote_milestone_safe(issue_id: int, upvote_count: int):
    db = db_session.SessionLocal()
    try:
        issue = db.query(Issue).filter(Issue.id == issue_id).first()
        if issue:
            notifications.notify_upvote_milestone(db, issue, upvote_count)
    except Exception:
        logger.error("Error in background upvote milestone for issue %s", issue_id, exc_info=True)
    finally:
        db.close()


# ===================================================================
# Read
# ===================================================================

@router.get("")
@limiter.limit("60/minute")
def list_issues(
    request: Request,
    db: Session = Depends(get_db),
    status: Optional[str] = Query(default=None),
    category: Optional[str] = Query(default=None),
    priority: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None),
    page: int = Query(default=1),
    limit: int = Query(default=10),
    sort_by: Optional[str] = Query(default=None, alias="sortBy"),
):
    result = issue_query.list_issues(
        db,
        status=status,
        category=category,
        priority=priority,
        search=search,
        page=page,
        limit=limit,
        sort_by=sort_by,
    )
    return envelope(
        result["items"],
        count=len(result["items"]),
        total=result["total_count"],
        totalPages=result["total_pages"],
        currentPage=page,
    )


@router.get("/stats")
def get_stats(db: Session = Depends(get_db)):
    return envelope(issue_query.issue_stats(db))


@router.get("/nearby/{longitude}/{latitude}")
def get_nearby(
    longitude: float,
    latitude: float,
    max_distance: float = Query(default=issue_query.DEFAULT_MAX_DISTANCE_M, alias="maxDistance"),
    limit: int = Query(default=issue_query.DEFAULT_NEARBY_LIMIT),
    db: Session = Depends(get_db),
):
    items = issue_query.nearby_issues(db, longitude, latitude, max_distance=max_distance, limit=limit)
    return envelope(items, count=len(items))


@router.get("/{issue_id}")
def get_issue(issue_id: int, db: Session = Depends(get_db)):
    issue = issue_store.get_issue(db, issue_id)
    return envelope(issue_store.serialize_issue(db, issue))


# ===================================================================
# Write
# ===================================================================

def _store_images(files: List[UploadFile]) -> list[dict]:
    """Store every upload or none of them."""
    errors = []
    if len(files) > MAX_FILES:
        errors.append(FieldError("images", f"At most {MAX_FILES} images are allowed"))
    payloads = []
    for f in files[:MAX_FILES]:
        data = f.file.read()
        if f.content_type not in storage.ALLOWED_CONTENT_TYPES:
            errors.append(FieldError("images", f"{f.filename}: unsupported file type {f.content_type}"))
        elif len(data) > MAX_BYTES:
            errors.append(FieldError("images", f"{f.filename}: file is larger than {MAX_BYTES // (1024 * 1024)} MB"))
        else:
            payloads.append((data, f.filename or "image.jpg", f.content_type))
    if errors:
        raise ValidationError(errors)

    stored: list[dict] = []
    try:
        for data, filename, content_type in payloads:
            stored.append(storage.store(data, filename, content_type, folder="issues"))
    except DependencyError:
        logger.error("Image upload failed; removing %s stored image(s)", len(stored), exc_info=True)
        storage.discard([s["public_id"] for s in stored])
        raise DependencyError("Failed to process image uploads")
    return stored


@router.post("", status_code=201)
@limiter.limit("10/minute")
def create_issue(
    request: Request,
    background_tasks: BackgroundTasks,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    priority: Optional[str] = Form(None),
    address: Optional[str] = Form(None),
    city: Optional[str] = Form(None),
    state: Optional[str] = Form(None),
    zip_code: Optional[str] = Form(None, alias="zipCode"),
    longitude: Optional[str] = Form(None),
    latitude: Optional[str] = Form(None),
    images: List[UploadFile] | None = File(default=None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    data = {
        "title": title,
        "description": description,
        "category": category,
        "priority": priority,
        "location": {
            "address": address,
            "city": city,
            "state": state,
            "zip_code": zip_code,
            "coordinates": [longitude, latitude],
        },
    }
    stored = _store_images(images or [])
    try:
        issue = issue_store.create_issue(db, data, stored, reporter_id=user.id)
    except Exception:
        storage.discard([s["public_id"] for s in stored])
        raise

    background_tasks.add_task(_send_report_confirmation_safe, issue_id=issue.id)
    return envelope(issue_store.serialize_issue(db, issue), message="Issue reported successfully")


@router.put("/{issue_id}")
def update_issue(
    issue_id: int,
    body: IssuePatch,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    patch = body.model_dump(include=body.model_fields_set)
    if "location" in patch and patch["location"] is not None:
        point = patch["location"].pop("coordinates", None) or {}
        patch["location"]["coordinates"] = point.get("coordinates")

    outcome = issue_store.update_issue(db, issue_id, user.id, user.role, patch)
    if outcome.status_changed or outcome.assignee_changed:
        background_tasks.add_task(
            _send_update_notifications_safe,
            issue_id=issue_id,
            actor_id=user.id,
            new_status=outcome.issue.status.value if outcome.status_changed else None,
            assignee_changed=outcome.assignee_changed,
        )
    return envelope(issue_store.serialize_issue(db, outcome.issue), message="Issue updated successfully")


@router.delete("/{issue_id}")
def delete_issue(
    issue_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    issue_store.delete_issue(db, issue_id, user.id, user.role)
    return envelope({}, message="Issue deleted successfully")


@router.post("/{issue_id}/upvote")
def upvote_issue(
    issue_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    count, upvoted = issue_store.toggle_upvote(db, issue_id, user.id)
    if upvoted:
        background_tasks.add_task(_send_upvote_milestone_safe, issue_id=issue_id, upvote_count=count)
    return envelope(UpvoteOut(upvote_count=count, user_upvoted=upvoted))


@router.post("/{issue_id}/comments", status_code=201)
def add_comment(
    issue_id: int,
    body: CommentIn,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    comments = issue_store.add_comment(db, issue_id, user.id, body.text)
    background_tasks.add_task(_send_comment_notification_safe, issue_id=issue_id, author_id=user.id)
    return envelope(comments, message="Comment added successfully")
