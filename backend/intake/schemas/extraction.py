from pydantic import BaseModel, ConfigDict


class ExtractedFields(BaseModel):
    """Known extraction keys plus any unclassified extras."""

    model_config = ConfigDict(extra="allow")

    document_type: str | None = None
    lot_number: str | None = None
    supplier_name: str | None = None
    client_name: str | None = None
    invoice_number: str | None = None
    total_amount: float | None = None
    invoice_date: str | None = None
    currency: str | None = None
    clearing_agent: str | None = None

    def known(self) -> dict:
        """Non-null values, extras included, as stored in ``extracted_data``."""
        return self.model_dump(exclude_none=True)


class CostingFields(ExtractedFields):
    commodity: str | None = None
    container_type: str | None = None
    delivery_route: str | None = None

    fob_amount: float | None = None
    fob_total_usd: float | None = None
    fob_total_zar: float | None = None
    roe_ours: float | None = None
    roe_client: float | None = None

    customs_duty: float | None = None
    customs_vat: float | None = None
    container_landing: float | None = None
    cargo_dues: float | None = None
    agency_fee: float | None = None
    additional_clearing: float | None = None
    clearing_total: float | None = None

    shipping_cost: float | None = None
    freight_usd: float | None = None
    freight_rate: float | None = None
    transport_cost: float | None = None
    additional_costs: float | None = None
    direct_booking: float | None = None
    bank_charges: float | None = None
    fx_commission: float | None = None

    total_cost_zar: float | None = None


class ExtractionRecordResponse(BaseModel):
    id: str
    document_id: str
    document_type: str | None
    extracted_data: dict | None
    confidence: float | None
    matched_shipment_id: str | None
    needs_review: bool
    created_at: str
