"""
Outbox for user notifications.

Rows are picked up by the delivery workers (chat, email) that live outside
this service. Sending is best-effort: a failed insert is logged, never raised.
"""
import logging
import uuid

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from intake.models import Notification
from intake.utils.timestamps import utc_now

logger = logging.getLogger(__name__)

SEVERITIES = {"info", "warning", "error"}


def notify(
    db: Session,
    user_id: str | None,
    notification_type: str,
    title: str,
    message: str,
    severity: str = "info",
) -> bool:
    if not user_id:
        logger.debug("Skipping %s notification: no recipient", notification_type)
        return False
    if severity not in SEVERITIES:
        severity = "info"
    try:
        db.add(Notification(
            id=str(uuid.uuid4()),
            user_id=user_id,
            notification_type=notification_type,
            title=title,
            message=message,
            severity=severity,
            created_at=utc_now(),
        ))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.warning("Failed to queue %s notification for %s", notification_type, user_id, exc_info=True)
        return False
    return True
