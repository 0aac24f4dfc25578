from sqlalchemy import JSON, Boolean, Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship
from intake.database import Base


class Document(Base):
    __tablename__ = "documents"

    id = Column(Text, primary_key=True)
    file_name = Column(Text, nullable=False)
    original_name = Column(Text, nullable=False)
    storage_path = Column(Text, nullable=False, unique=True)
    mime_type = Column(Text)
    file_size = Column(Integer, nullable=False)
    content_hash = Column(Text)
    classification = Column(Text)
    extracted_data = Column(JSON)
    format_metadata = Column(JSON)
    workflow_status = Column(Text, nullable=False, default="draft")
    requires_approval = Column(Boolean, nullable=False, default=False)
    needs_review = Column(Boolean, nullable=False, default=True)
    destination_folder = Column(Text)
    folder_path = Column(Text)
    shipment_id = Column(Text, ForeignKey("shipments.id", ondelete="SET NULL"))
    uploaded_by = Column(Text)
    upload_channel = Column(Text, nullable=False, default="upload")
    version = Column(Integer, nullable=False, default=1)
    parent_document = Column(Text, ForeignKey("documents.id", ondelete="SET NULL"))
    is_latest_version = Column(Boolean, nullable=False, default=True)
    replaced_by = Column(Text)
    approved_by = Column(Text)
    approved_at = Column(Text)
    rejected_by = Column(Text)
    rejected_at = Column(Text)
    rejection_reason = Column(Text)
    uploaded_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)
    # Bumped on every UPDATE; a stale write raises StaleDataError.
    row_version = Column(Integer, nullable=False)

    history = relationship(
        "WorkflowHistoryEntry",
        back_populates="document",
        order_by="WorkflowHistoryEntry.seq",
        cascade="all, delete-orphan",
    )
    extractions = relationship("ExtractionRecord", back_populates="document", cascade="all, delete-orphan")

    __mapper_args__ = {"version_id_col": row_version}
