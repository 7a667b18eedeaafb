# File: civicsync/jobs/purge_notifications.py
"""Delete expired notifications. Run from cron:

    python -m civicsync.jobs.purge_notifications
"""
import logging

from civicsync.core.logging import configure_logging
from civicsync.db import session as db_session
from civicsync.services.notifications import purge_expired

logger = logging.getLogger(__name__)


def run() -> int:
    db = db_session.SessionLocal()
    try:
        return purge_expired(db)
    finally:
        db.close()


if __name__ == "__main__":
    configure_logging()
    deleted = run()
    logger.info("purge finished, %s notification(s) removed", deleted)
