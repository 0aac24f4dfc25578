from sqlalchemy import JSON, Boolean, Column, Float, ForeignKey, Text
from sqlalchemy.orm import relationship
from intake.database import Base


class ExtractionRecord(Base):
    __tablename__ = "extraction_records"

    id = Column(Text, primary_key=True)
    document_id = Column(Text, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    document_type = Column(Text)
    extracted_data = Column(JSON)
    confidence = Column(Float)
    matched_shipment_id = Column(Text)
    needs_review = Column(Boolean, nullable=False, default=True)
    created_at = Column(Text, nullable=False)

    document = relationship("Document", back_populates="extractions")
