from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from intake.database import get_db
from intake.dependencies import CallContext, get_call_context, http_error
from intake.exceptions import IntakeError
from intake.routers.documents import doc_to_response
from intake.schemas.document import DocumentResponse
from intake.schemas.workflow import (
    ApproveRequest,
    BulkApproveRequest,
    BulkApproveResponse,
    BulkFailure,
    DestinationSuggestion,
    RejectRequest,
    StageRequest,
)
from intake.services import workflow_service

router = APIRouter(prefix="/workflow", tags=["workflow"])


@router.get("/pending", response_model=list[DocumentResponse])
def list_pending(db: Session = Depends(get_db)):
    return [doc_to_response(d) for d in workflow_service.list_pending(db)]


@router.post("/documents/{document_id}/stage", response_model=DocumentResponse)
def stage_document(
    document_id: str,
    req: StageRequest | None = None,
    ctx: CallContext = Depends(get_call_context),
    db: Session = Depends(get_db),
):
    destination = req.destination_folder if req else None
    try:
        doc = workflow_service.stage_for_review(db, document_id, ctx.user_id, destination)
    except IntakeError as exc:
        raise http_error(exc)
    return doc_to_response(doc)


@router.post("/documents/{document_id}/approve", response_model=DocumentResponse)
def approve_document(
    document_id: str,
    req: ApproveRequest | None = None,
    ctx: CallContext = Depends(get_call_context),
    db: Session = Depends(get_db),
):
    destination = req.destination_folder if req else None
    try:
        doc = workflow_service.approve(db, document_id, ctx.user_id, destination)
    except IntakeError as exc:
        raise http_error(exc)
    return doc_to_response(doc)


@router.post("/documents/{document_id}/reject", response_model=DocumentResponse)
def reject_document(
    document_id: str,
    req: RejectRequest,
    ctx: CallContext = Depends(get_call_context),
    db: Session = Depends(get_db),
):
    try:
        doc = workflow_service.reject(db, document_id, ctx.user_id, req.reason)
    except IntakeError as exc:
        raise http_error(exc)
    return doc_to_response(doc)


@router.post("/documents/{document_id}/archive", response_model=DocumentResponse)
def archive_document(
    document_id: str,
    ctx: CallContext = Depends(get_call_context),
    db: Session = Depends(get_db),
):
    try:
        doc = workflow_service.archive(db, document_id, ctx.user_id)
    except IntakeError as exc:
        raise http_error(exc)
    return doc_to_response(doc)


@router.post("/bulk-approve", response_model=BulkApproveResponse)
def bulk_approve(
    req: BulkApproveRequest,
    ctx: CallContext = Depends(get_call_context),
    db: Session = Depends(get_db),
):
    result = workflow_service.bulk_approve(db, req.document_ids, ctx.user_id)
    return BulkApproveResponse(
        approved=result.approved,
        approved_count=result.approved_count,
        failed_count=result.failed_count,
        failures=[BulkFailure(document_id=d, error=e) for d, e in result.failures],
    )


@router.get("/suggest-destination", response_model=DestinationSuggestion)
def suggest_destination(
    classification: str | None = None,
    supplier_name: str | None = None,
    lot_number: str | None = None,
    clearing_agent: str | None = None,
):
    fields = {"supplier_name": supplier_name, "lot_number": lot_number, "clearing_agent": clearing_agent}
    return DestinationSuggestion(
        classification=classification,
        destination_folder=workflow_service.suggest_destination_folder(classification, fields),
    )
