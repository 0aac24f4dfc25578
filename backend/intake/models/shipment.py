from sqlalchemy import Column, Text
from intake.database import Base


class Shipment(Base):
    __tablename__ = "shipments"

    id = Column(Text, primary_key=True)
    lot_number = Column(Text, nullable=False)
    supplier_name = Column(Text)
    client_name = Column(Text)
    status = Column(Text, nullable=False, default="pending")
    created_at = Column(Text, nullable=False)
