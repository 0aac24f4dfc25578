import uuid

from sqlalchemy.orm import Session

from intake.models import AuditEvent
from intake.utils.timestamps import utc_now


def record_audit_event(
    db: Session,
    event_type: str,
    entity_id: str,
    user_id: str | None,
    metadata: dict | None = None,
    entity_type: str = "document",
) -> AuditEvent:
    """Stage an audit row in the caller's transaction; the caller commits."""
    event = AuditEvent(
        id=str(uuid.uuid4()),
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        event_metadata=metadata or {},
        created_at=utc_now(),
    )
    db.add(event)
    return event
