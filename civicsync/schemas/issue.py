# File: civicsync/schemas/issue.py
from pydantic import Field
from typing import Optional, Literal, List, Any
from datetime import datetime
from civicsync.schemas.common import CamelModel
from civicsync.schemas.user import UserLite


class GeoPoint(CamelModel):
    type: Literal["Point"] = "Point"
    coordinates: List[Any] = Field(default_factory=list)  # [longitude, latitude]


class LocationIn(CamelModel):
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    coordinates: Optional[GeoPoint] = None


class IssuePatch(CamelModel):
    """Body of PUT /api/issues/{id}. Only fields the client sends are applied.

    Values are deliberately loose; the validation pass in
    ``civicsync.services.validation`` reports every bad field at once.
    """
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    priority: Optional[str] = None
    status: Optional[str] = None
    status_note: Optional[str] = None
    rejection_reason: Optional[str] = None
    location: Optional[LocationIn] = None
    assigned_to: Optional[int] = None


class CommentIn(CamelModel):
    text: Optional[str] = None


class LocationOut(CamelModel):
    address: str
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    coordinates: GeoPoint


class ImageOut(CamelModel):
    url: str
    public_id: str
    uploaded_at: Optional[datetime] = None


class CommentOut(CamelModel):
    id: int
    user: Optional[UserLite] = None
    text: str
    created_at: datetime


class StatusChangeOut(CamelModel):
    status: str
    changed_by: Optional[UserLite] = None
    changed_at: datetime
    note: Optional[str] = None


class IssueOut(CamelModel):
    id: int
    title: str
    description: str
    category: str
    status: str
    priority: str
    location: LocationOut
    images: List[ImageOut] = []
    reported_by: Optional[UserLite] = None
    assigned_to: Optional[UserLite] = None
    upvotes: List[int] = []
    upvote_count: int = 0
    comments: List[CommentOut] = []
    status_history: List[StatusChangeOut] = []
    rejection_reason: Optional[str] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    distance: Optional[float] = None


class UpvoteOut(CamelModel):
    upvote_count: int
    user_upvoted: bool


class StatsOverview(CamelModel):
    total_issues: int = 0
    pending: int = 0
    in_progress: int = 0
    resolved: int = 0
    rejected: int = 0


class CategoryCount(CamelModel):
    category: str
    count: int


class IssueStatsOut(CamelModel):
    overview: StatsOverview
    by_category: List[CategoryCount] = []
