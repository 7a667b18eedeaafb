# File: civicsync/services/issue_query.py
"""Read side of issues: filtered listing, nearby search and statistics."""
import math
from math import radians, degrees, cos, sin, asin, sqrt
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, selectinload

from civicsync.core.errors import FieldError, ValidationError
from civicsync.models.issue import Issue, IssuePriority, IssueStatus
from civicsync.schemas.issue import CategoryCount, IssueOut, IssueStatsOut, StatsOverview
from civicsync.services.issue_store import serialize_issues
from civicsync.services.validation import check_coordinates, check_page

EARTH_RADIUS_M = 6371000
DEFAULT_MAX_DISTANCE_M = 5000
DEFAULT_NEARBY_LIMIT = 20
MAX_NEARBY_LIMIT = 100
DEFAULT_SORT = "-createdAt"

SORT_FIELDS = {
    "createdAt": Issue.created_at,
    "updatedAt": Issue.updated_at,
    "upvoteCount": Issue.upvote_count,
    "title": Issue.title,
    "status": Issue.status,
    "priority": Issue.priority,
    "category": Issue.category,
}

_EAGER = (
    selectinload(Issue.images),
    selectinload(Issue.comments),
    selectinload(Issue.status_history),
    selectinload(Issue.upvotes),
)


def haversine(lat1, lon1, lat2, lon2) -> float:
    """Great-circle distance in meters."""
    lat1, lon1, lat2, lon2 = map(radians, [lat1, lon1, lat2, lon2])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    c = 2 * asin(min(1.0, sqrt(a)))
    return EARTH_RADIUS_M * c


def _enum_filter(value: Optional[str], enum_cls, field: str, errors: list[FieldError]):
    if not value:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        errors.append(FieldError(field, f"Invalid {field}"))
        return None


def _order_by(sort_key: Optional[str], errors: list[FieldError]):
    key = sort_key or DEFAULT_SORT
    descending = key.startswith("-")
    name = key[1:] if descending else key
    column = SORT_FIELDS.get(name)
    if column is None:
        errors.append(FieldError("sortBy", f"Cannot sort by {name!r}"))
        return []
    if descending:
        return [column.desc(), Issue.id.desc()]
    return [column.asc(), Issue.id.asc()]


def list_issues(
    db: Session,
    status: Optional[str] = None,
    category: Optional[str] = None,
    priority: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    sort_by: Optional[str] = None,
) -> dict:
    """Filtered, sorted, paginated issues.

    Filters combine with AND; ``search`` matches title OR description
    case-insensitively. Pages are 1-indexed and id breaks sort ties, so the
    same request always yields the same page.
    """
    errors = check_page(page, limit)
    status_value = _enum_filter(status, IssueStatus, "status", errors)
    priority_value = _enum_filter(priority, IssuePriority, "priority", errors)
    order = _order_by(sort_by, errors)
    if errors:
        raise ValidationError(errors)

    q = db.query(Issue)
    if status_value is not None:
        q = q.filter(Issue.status == status_value)
    if category:
        q = q.filter(Issue.category == category)
    if priority_value is not None:
        q = q.filter(Issue.priority == priority_value)
    if search:
        q = q.filter(or_(
            Issue.title.icontains(search, autoescape=True),
            Issue.description.icontains(search, autoescape=True),
        ))

    total_count = q.count()
    issues = (
        q.options(*_EAGER)
        .order_by(*order)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "items": serialize_issues(db, issues),
        "total_count": total_count,
        "total_pages": math.ceil(total_count / limit),
    }


def _bounding_box(lng: float, lat: float, radius_m: float):
    """Degree window around the point that contains the search circle."""
    # padded so float rounding never drops a point on the circle edge
    angular = radius_m / EARTH_RADIUS_M * 1.0001
    dlat = degrees(angular)
    min_lat, max_lat = lat - dlat, lat + dlat
    if min_lat <= -90 or max_lat >= 90:
        # the circle covers a pole: every longitude is in play
        return max(min_lat, -90), min(max_lat, 90), None
    ratio = sin(angular) / cos(radians(lat))
    if ratio >= 1:
        return min_lat, max_lat, None
    dlng = degrees(asin(ratio))
    return min_lat, max_lat, (lng - dlng, lng + dlng)


def nearby_issues(
    db: Session,
    longitude,
    latitude,
    max_distance: float = DEFAULT_MAX_DISTANCE_M,
    limit: int = DEFAULT_NEARBY_LIMIT,
) -> list[IssueOut]:
    """Issues within ``max_distance`` meters of the point, nearest first."""
    errors: list[FieldError] = []
    point = check_coordinates(longitude, latitude, errors, field="coordinates")
    if max_distance is None or not math.isfinite(max_distance) or max_distance < 0:
        errors.append(FieldError("maxDistance", "Max distance must be a finite number of zero or more"))
    if not isinstance(limit, int) or not 1 <= limit <= MAX_NEARBY_LIMIT:
        errors.append(FieldError("limit", f"Limit must be between 1 and {MAX_NEARBY_LIMIT}"))
    if errors:
        raise ValidationError(errors)
    lng, lat = point

    min_lat, max_lat, lng_window = _bounding_box(lng, lat, max_distance)
    q = db.query(Issue).filter(Issue.lat >= min_lat, Issue.lat <= max_lat)
    if lng_window is not None:
        lo, hi = lng_window
        if lo < -180:
            q = q.filter(or_(Issue.lng >= lo + 360, Issue.lng <= hi))
        elif hi > 180:
            q = q.filter(or_(Issue.lng >= lo, Issue.lng <= hi - 360))
        else:
            q = q.filter(Issue.lng >= lo, Issue.lng <= hi)

    candidates = []
    for issue in q.options(*_EAGER).all():
        distance = haversine(lat, lng, issue.lat, issue.lng)
        if distance <= max_distance:
            candidates.append((distance, issue.id, issue))
    candidates.sort(key=lambda c: (c[0], c[1]))
    chosen = candidates[:limit]
    return serialize_issues(db, [c[2] for c in chosen], {c[1]: c[0] for c in chosen})


def issue_stats(db: Session) -> IssueStatsOut:
    """Counts by status and by category, always computed fresh."""
    by_status = dict(
        db.query(Issue.status, func.count(Issue.id)).group_by(Issue.status).all()
    )
    overview = StatsOverview(
        total_issues=sum(by_status.values()),
        pending=by_status.get(IssueStatus.pending, 0),
        in_progress=by_status.get(IssueStatus.in_progress, 0),
        resolved=by_status.get(IssueStatus.resolved, 0),
        rejected=by_status.get(IssueStatus.rejected, 0),
    )
    rows = (
        db.query(Issue.category, func.count(Issue.id))
        .group_by(Issue.category)
        .order_by(func.count(Issue.id).desc(), Issue.category.asc())
        .all()
    )
    return IssueStatsOut(
        overview=overview,
        by_category=[CategoryCount(category=c, count=n) for c, n in rows],
    )
