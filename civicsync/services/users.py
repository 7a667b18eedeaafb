# File: civicsync/services/users.py
"""User directory: resolves user ids to display projections."""
from typing import Iterable, Optional
from sqlalchemy.orm import Session
from civicsync.models.user import User
from civicsync.schemas.user import UserLite


def display(user: Optional[User], include_email: bool = True) -> Optional[UserLite]:
    if user is None:
        return None
    return UserLite(
        id=user.id,
        name=user.name,
        email=user.email if include_email else None,
        avatar=user.avatar,
    )


def display_map(db: Session, ids: Iterable[Optional[int]], include_email: bool = True) -> dict[int, UserLite]:
    """Batch-resolve ``ids``; unknown ids are simply absent from the result."""
    wanted = {i for i in ids if i is not None}
    if not wanted:
        return {}
    users = db.query(User).filter(User.id.in_(wanted)).all()
    return {u.id: display(u, include_email) for u in users}


def get_user(db: Session, user_id: int) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()
