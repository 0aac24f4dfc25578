from sqlalchemy import JSON, Column, Float, ForeignKey, Text
from intake.database import Base


class FileCosting(Base):
    __tablename__ = "file_costings"

    id = Column(Text, primary_key=True)
    shipment_id = Column(Text, ForeignKey("shipments.id", ondelete="SET NULL"))
    lot_number = Column(Text)
    transport_documents = Column(JSON, default=list)
    clearing_documents = Column(JSON, default=list)
    other_documents = Column(JSON, default=list)
    transport_cost_zar = Column(Float, nullable=False, default=0.0)
    clearing_cost_zar = Column(Float, nullable=False, default=0.0)
    other_costs_zar = Column(Float, nullable=False, default=0.0)
    grand_total_zar = Column(Float, nullable=False, default=0.0)
    status = Column(Text, nullable=False, default="draft")
    notes = Column(Text)
    created_by = Column(Text)
    finalized_at = Column(Text)
    finalized_by = Column(Text)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)
