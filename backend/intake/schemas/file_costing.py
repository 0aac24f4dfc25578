from pydantic import BaseModel


class FileCostingCreate(BaseModel):
    shipment_id: str | None = None
    lot_number: str | None = None
    transport_documents: list[str] = []
    clearing_documents: list[str] = []
    other_documents: list[str] = []
    transport_cost_zar: float = 0.0
    clearing_cost_zar: float = 0.0
    other_costs_zar: float = 0.0
    notes: str | None = None


class FileCostingUpdate(BaseModel):
    transport_documents: list[str] | None = None
    clearing_documents: list[str] | None = None
    other_documents: list[str] | None = None
    transport_cost_zar: float | None = None
    clearing_cost_zar: float | None = None
    other_costs_zar: float | None = None
    notes: str | None = None


class FileCostingResponse(BaseModel):
    id: str
    shipment_id: str | None
    lot_number: str | None
    transport_documents: list[str]
    clearing_documents: list[str]
    other_documents: list[str]
    transport_cost_zar: float
    clearing_cost_zar: float
    other_costs_zar: float
    grand_total_zar: float
    status: str
    notes: str | None
    created_by: str | None
    finalized_at: str | None
    finalized_by: str | None
    created_at: str
    updated_at: str


class FileCostingData(BaseModel):
    """Business values written into a fresh costing sheet."""

    lot_number: str
    supplier_name: str = ""
    client_name: str = ""
    commodity: str = "General Cargo"
    container_type: str = "40HQ"
    delivery_route: str = "DBN - DBN"
    fob_amount: float | None = None
    roe_ours: float | None = None
    roe_client: float | None = None
    customs_duty: float | None = None
    customs_vat: float | None = None
    container_landing: float | None = None
    cargo_dues: float | None = None
    agency_fee: float | None = None
    additional_clearing: float | None = None
    transport_cost: float | None = None
    shipping_cost: float | None = None
    freight_usd: float | None = None
    freight_rate: float | None = None
    direct_booking: float | None = None
    bank_charges: float | None = None
    fx_commission: float | None = None
    client_invoice: float | None = None


class ShipmentDocumentsResponse(BaseModel):
    shipment_id: str
    transport_documents: list[str]
    clearing_documents: list[str]
    other_documents: list[str]
