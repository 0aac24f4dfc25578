from sqlalchemy import Column, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from intake.database import Base


class WorkflowHistoryEntry(Base):
    __tablename__ = "workflow_history"
    __table_args__ = (UniqueConstraint("document_id", "seq"),)

    id = Column(Text, primary_key=True)
    document_id = Column(Text, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    seq = Column(Integer, nullable=False)
    from_status = Column(Text, nullable=False)
    to_status = Column(Text, nullable=False)
    by_user = Column(Text, nullable=False)
    at = Column(Text, nullable=False)
    action = Column(Text, nullable=False)
    from_folder = Column(Text)
    to_folder = Column(Text)
    reason = Column(Text)

    document = relationship("Document", back_populates="history")
