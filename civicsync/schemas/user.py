# File: civicsync/schemas/user.py
from typing import Optional
from civicsync.schemas.common import CamelModel

class UserLite(CamelModel):
    """Display projection of a user on issues, comments and notifications."""
    id: int
    name: str
    email: Optional[str] = None
    avatar: Optional[str] = None
