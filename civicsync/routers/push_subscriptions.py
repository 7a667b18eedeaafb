# File: civicsync/routers/push_subscriptions.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from civicsync.core.config import settings
from civicsync.core.errors import ValidationError
from civicsync.core.security import get_current_user
from civicsync.db.session import get_db
from civicsync.models.push import PushSubscription
from civicsync.models.user import User
from civicsync.schemas.common import envelope
from civicsync.schemas.notification import PushSubscriptionIn

router = APIRouter(prefix="/api/push", tags=["push"])


@router.get("/vapid-public-key")
def vapid_public_key():
    return envelope({"publicKey": settings.vapid_public_key})


@router.post("/subscribe")
def subscribe(sub: PushSubscriptionIn, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    p256dh, auth = sub.keys.get("p256dh"), sub.keys.get("auth")
    if not (sub.endpoint and p256dh and auth):
        raise ValidationError.single("keys", "Bad subscription")
    # upsert by endpoint
    existing = db.query(PushSubscription).filter(PushSubscription.endpoint == sub.endpoint).first()
    if existing:
        existing.user_id = user.id; existing.p256dh = p256dh; existing.auth = auth
    else:
        db.add(PushSubscription(user_id=user.id, endpoint=sub.endpoint, p256dh=p256dh, auth=auth))
    db.commit()
    return envelope({}, message="Subscribed")


@router.post("/unsubscribe")
def unsubscribe(sub: dict, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    endpoint = sub.get("endpoint")
    if endpoint:
        db.query(PushSubscription).filter(
            PushSubscription.endpoint == endpoint, PushSubscription.user_id == user.id
        ).delete()
        db.commit()
    return envelope({}, message="Unsubscribed")
