from sqlalchemy import JSON, Column, Text
from intake.database import Base


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Text, primary_key=True)
    user_id = Column(Text, nullable=False)
    notification_type = Column(Text, nullable=False)
    title = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    severity = Column(Text, nullable=False, default="info")
    created_at = Column(Text, nullable=False)
    read_at = Column(Text)


class AuditEvent(Base):
    __tablename__ = "audit_events"

    id = Column(Text, primary_key=True)
    event_type = Column(Text, nullable=False)
    entity_type = Column(Text, nullable=False)
    entity_id = Column(Text, nullable=False)
    user_id = Column(Text)
    # "metadata" is reserved on declarative classes.
    event_metadata = Column("metadata", JSON)
    created_at = Column(Text, nullable=False)
