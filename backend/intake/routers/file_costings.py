from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from intake.database import get_db
from intake.dependencies import CallContext, get_call_context, http_error
from intake.exceptions import IntakeError
from intake.models import FileCosting
from intake.schemas.file_costing import (
    FileCostingCreate,
    FileCostingResponse,
    FileCostingUpdate,
    ShipmentDocumentsResponse,
)
from intake.services import file_costing_service

router = APIRouter(prefix="/file-costings", tags=["file-costings"])


def _costing_to_response(costing: FileCosting) -> FileCostingResponse:
    return FileCostingResponse(
        id=costing.id,
        shipment_id=costing.shipment_id,
        lot_number=costing.lot_number,
        transport_documents=costing.transport_documents or [],
        clearing_documents=costing.clearing_documents or [],
        other_documents=costing.other_documents or [],
        transport_cost_zar=costing.transport_cost_zar,
        clearing_cost_zar=costing.clearing_cost_zar,
        other_costs_zar=costing.other_costs_zar,
        grand_total_zar=costing.grand_total_zar,
        status=costing.status,
        notes=costing.notes,
        created_by=costing.created_by,
        finalized_at=costing.finalized_at,
        finalized_by=costing.finalized_by,
        created_at=costing.created_at,
        updated_at=costing.updated_at,
    )


@router.post("", response_model=FileCostingResponse, status_code=201)
def create_file_costing(
    req: FileCostingCreate,
    ctx: CallContext = Depends(get_call_context),
    db: Session = Depends(get_db),
):
    costing = file_costing_service.create_file_costing(db, req, ctx.user_id)
    return _costing_to_response(costing)


@router.get("", response_model=list[FileCostingResponse])
def list_file_costings(
    shipment_id: str | None = None,
    status: str | None = None,
    db: Session = Depends(get_db),
):
    costings = file_costing_service.list_file_costings(db, shipment_id=shipment_id, status=status)
    return [_costing_to_response(c) for c in costings]


@router.get("/shipments/{shipment_id}/documents", response_model=ShipmentDocumentsResponse)
def shipment_documents(shipment_id: str, db: Session = Depends(get_db)):
    grouped = file_costing_service.shipment_documents(db, shipment_id)
    return ShipmentDocumentsResponse(shipment_id=shipment_id, **grouped)


@router.get("/{costing_id}", response_model=FileCostingResponse)
def get_file_costing(costing_id: str, db: Session = Depends(get_db)):
    try:
        costing = file_costing_service.get_file_costing(db, costing_id)
    except IntakeError as exc:
        raise http_error(exc)
    return _costing_to_response(costing)


@router.put("/{costing_id}", response_model=FileCostingResponse)
def update_file_costing(
    costing_id: str,
    req: FileCostingUpdate,
    ctx: CallContext = Depends(get_call_context),
    db: Session = Depends(get_db),
):
    try:
        costing = file_costing_service.update_file_costing(db, costing_id, req)
    except IntakeError as exc:
        raise http_error(exc)
    return _costing_to_response(costing)


@router.post("/{costing_id}/submit", response_model=FileCostingResponse)
def submit_file_costing(
    costing_id: str,
    ctx: CallContext = Depends(get_call_context),
    db: Session = Depends(get_db),
):
    try:
        costing = file_costing_service.submit_for_review(db, costing_id)
    except IntakeError as exc:
        raise http_error(exc)
    return _costing_to_response(costing)


@router.post("/{costing_id}/finalize", response_model=FileCostingResponse)
def finalize_file_costing(
    costing_id: str,
    ctx: CallContext = Depends(get_call_context),
    db: Session = Depends(get_db),
):
    try:
        costing = file_costing_service.finalize(db, costing_id, ctx.user_id)
    except IntakeError as exc:
        raise http_error(exc)
    return _costing_to_response(costing)
