from sqlalchemy import Boolean, Column, Float, Integer, Text
from intake.database import Base


class DuplicateSettings(Base):
    __tablename__ = "duplicate_settings"

    # Single-row table, always id 1.
    id = Column(Integer, primary_key=True)
    duplicate_detection_enabled = Column(Boolean, nullable=False, default=True)
    filename_similarity_threshold = Column(Float, nullable=False, default=0.85)
    auto_block_exact_duplicates = Column(Boolean, nullable=False, default=False)
    check_invoice_numbers = Column(Boolean, nullable=False, default=True)
    duplicate_check_days = Column(Integer, nullable=False, default=90)
    updated_at = Column(Text, nullable=False)


class DuplicateCheck(Base):
    __tablename__ = "duplicate_checks"

    id = Column(Text, primary_key=True)
    file_name = Column(Text, nullable=False)
    content_hash = Column(Text, nullable=False)
    match_count = Column(Integer, nullable=False)
    best_match_id = Column(Text)
    best_match_type = Column(Text)
    best_confidence = Column(Float)
    checked_by = Column(Text)
    checked_at = Column(Text, nullable=False)
