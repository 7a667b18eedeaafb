# File: civicsync/services/notify_push.py
import json
import logging
from pywebpush import webpush, WebPushException
from civicsync.core.config import settings

logger = logging.getLogger(__name__)

def send_push(subscription: dict, payload: dict) -> bool:
    if not settings.vapid_private_key or not settings.vapid_public_key:
        return False
    try:
        webpush(
            subscription_info=subscription,
            data=json.dumps(payload),
            vapid_private_key=settings.vapid_private_key,
            vapid_claims={"sub": settings.vapid_sub},
        )
        return True
    except WebPushException:
        logger.warning("push to %s failed", subscription.get("endpoint"), exc_info=True)
        return False
