from civicsync.models.user import User, UserRole
from civicsync.models.attachment import IssueImage
from civicsync.models.comment import IssueComment
from civicsync.models.issue_activity import IssueStatusChange
from civicsync.models.upvote import IssueUpvote
from civicsync.models.issue import Issue, IssueStatus, IssuePriority, ISSUE_CATEGORIES
from civicsync.models.notification import Notification, NotificationType
from civicsync.models.push import PushSubscription

__all__ = [
    "User",
    "UserRole",
    "IssueImage",
    "IssueComment",
    "IssueStatusChange",
    "IssueUpvote",
    "Issue",
    "IssueStatus",
    "IssuePriority",
    "ISSUE_CATEGORIES",
    "Notification",
    "NotificationType",
    "PushSubscription",
]
