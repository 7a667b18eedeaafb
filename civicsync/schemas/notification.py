# File: civicsync/schemas/notification.py
from datetime import datetime
from typing import Optional
from civicsync.schemas.common import CamelModel
from civicsync.schemas.user import UserLite


class IssueBrief(CamelModel):
    id: int
    title: str
    status: str


class NotificationOut(CamelModel):
    id: int
    recipient: int
    sender: Optional[UserLite] = None
    type: str
    issue: Optional[IssueBrief] = None
    title: str
    message: str
    is_read: bool
    link: Optional[str] = None
    created_at: datetime
    expires_at: datetime


class PushSubscriptionIn(CamelModel):
    endpoint: str
    keys: dict[str, str]
