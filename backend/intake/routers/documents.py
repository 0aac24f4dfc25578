import json

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from intake.config import settings
from intake.database import get_db
from intake.dependencies import CallContext, get_call_context, http_error
from intake.exceptions import IntakeError
from intake.models import Document, ExtractionRecord, WorkflowHistoryEntry
from intake.schemas.document import (
    DocumentResponse,
    DuplicateCheckResponse,
    DuplicateMatchResponse,
    HistoryEntryResponse,
    IntakeResponse,
    VerifyResponse,
)
from intake.schemas.extraction import ExtractedFields, ExtractionRecordResponse
from intake.services import intake_service, workflow_service
from intake.services.blob_store import get_blob_store
from intake.services.duplicate_service import DuplicateMatch, find_duplicates
from intake.services.intake_service import IntakeContext, IntakeResult
from intake.utils.fingerprint import content_digest, file_digest

router = APIRouter(prefix="/documents", tags=["documents"])


def doc_to_response(doc: Document) -> DocumentResponse:
    return DocumentResponse(
        id=doc.id,
        file_name=doc.file_name,
        original_name=doc.original_name,
        storage_path=doc.storage_path,
        mime_type=doc.mime_type,
        file_size=doc.file_size,
        content_hash=doc.content_hash,
        classification=doc.classification,
        extracted_data=doc.extracted_data,
        workflow_status=doc.workflow_status,
        requires_approval=bool(doc.requires_approval),
        needs_review=bool(doc.needs_review),
        destination_folder=doc.destination_folder,
        folder_path=doc.folder_path,
        shipment_id=doc.shipment_id,
        uploaded_by=doc.uploaded_by,
        upload_channel=doc.upload_channel,
        version=doc.version,
        parent_document=doc.parent_document,
        is_latest_version=bool(doc.is_latest_version),
        replaced_by=doc.replaced_by,
        approved_by=doc.approved_by,
        approved_at=doc.approved_at,
        rejected_by=doc.rejected_by,
        rejected_at=doc.rejected_at,
        rejection_reason=doc.rejection_reason,
        uploaded_at=doc.uploaded_at,
        updated_at=doc.updated_at,
    )


def _history_to_response(entry: WorkflowHistoryEntry) -> HistoryEntryResponse:
    return HistoryEntryResponse(
        seq=entry.seq,
        from_status=entry.from_status,
        to_status=entry.to_status,
        by_user=entry.by_user,
        at=entry.at,
        action=entry.action,
        from_folder=entry.from_folder,
        to_folder=entry.to_folder,
        reason=entry.reason,
    )


def _extraction_to_response(record: ExtractionRecord) -> ExtractionRecordResponse:
    return ExtractionRecordResponse(
        id=record.id,
        document_id=record.document_id,
        document_type=record.document_type,
        extracted_data=record.extracted_data,
        confidence=record.confidence,
        matched_shipment_id=record.matched_shipment_id,
        needs_review=bool(record.needs_review),
        created_at=record.created_at,
    )


def _match_to_response(match: DuplicateMatch) -> DuplicateMatchResponse:
    return DuplicateMatchResponse(
        match_type=match.match_type,
        confidence=match.confidence,
        document_id=match.document_id,
        file_name=match.file_name,
        uploaded_at=match.uploaded_at,
        reason=match.reason,
    )


def result_to_response(result: IntakeResult) -> IntakeResponse:
    return IntakeResponse(
        document=doc_to_response(result.document),
        duplicates=[_match_to_response(m) for m in result.duplicates],
        needs_review=result.needs_review,
        matched_shipment_id=result.matched_shipment_id,
        file_costing_id=result.file_costing_id,
    )


async def read_upload(file: UploadFile) -> bytes:
    """Read an upload in chunks, refusing anything over the size limit."""
    max_bytes = settings.max_upload_bytes
    size = 0
    chunks: list[bytes] = []
    while True:
        chunk = await file.read(1024 * 1024)
        if not chunk:
            break
        size += len(chunk)
        if size > max_bytes:
            raise HTTPException(status_code=413, detail=f"File too large (max {max_bytes} bytes)")
        chunks.append(chunk)
    return b"".join(chunks)


def _parse_fields(raw: str | None) -> dict | None:
    if not raw:
        return None
    try:
        fields = json.loads(raw)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="extracted_fields must be a JSON object")
    if not isinstance(fields, dict):
        raise HTTPException(status_code=400, detail="extracted_fields must be a JSON object")
    try:
        ExtractedFields.model_validate(fields)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid extracted_fields: {exc.errors()}")
    return fields


def _get_or_404(db: Session, document_id: str) -> Document:
    try:
        return workflow_service.get_document(db, document_id)
    except IntakeError as exc:
        raise http_error(exc)


@router.post("", response_model=IntakeResponse, status_code=201)
async def upload_document(
    file: UploadFile = File(...),
    shipment_id: str | None = Form(None),
    folder: str | None = Form(None),
    document_type: str | None = Form(None),
    extracted_fields: str | None = Form(None),
    ctx: CallContext = Depends(get_call_context),
    db: Session = Depends(get_db),
):
    content = await read_upload(file)
    context = IntakeContext(
        uploaded_by=ctx.user_id,
        channel="upload",
        session_token=ctx.session_token,
        shipment_id=shipment_id,
        folder=folder,
        document_type=document_type,
        extracted_fields=_parse_fields(extracted_fields),
    )
    try:
        result = await run_in_threadpool(
            intake_service.intake, db, content, file.filename or "", file.content_type, context,
        )
    except IntakeError as exc:
        raise http_error(exc)
    return result_to_response(result)


@router.get("", response_model=list[DocumentResponse])
def list_documents(
    status: str | None = None,
    shipment_id: str | None = None,
    classification: str | None = None,
    needs_review: bool | None = None,
    latest_only: bool = True,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    query = db.query(Document)
    if status:
        query = query.filter(Document.workflow_status == status)
    if shipment_id:
        query = query.filter(Document.shipment_id == shipment_id)
    if classification:
        query = query.filter(Document.classification == classification)
    if needs_review is not None:
        query = query.filter(Document.needs_review.is_(needs_review))
    if latest_only:
        query = query.filter(Document.is_latest_version.is_(True))
    docs = query.order_by(Document.uploaded_at.desc()).offset(offset).limit(limit).all()
    return [doc_to_response(d) for d in docs]


@router.post("/duplicates/check", response_model=DuplicateCheckResponse)
async def check_duplicates(
    file: UploadFile = File(...),
    extracted_fields: str | None = Form(None),
    ctx: CallContext = Depends(get_call_context),
    db: Session = Depends(get_db),
):
    """Run duplicate detection without storing anything."""
    content = await read_upload(file)
    fields = _parse_fields(extracted_fields)
    extracted = ExtractedFields(**fields) if fields else None
    matches = await run_in_threadpool(
        find_duplicates, db, file.filename or "", content, extracted, None, ctx.user_id,
    )
    return DuplicateCheckResponse(
        content_hash=content_digest(content),
        duplicates=[_match_to_response(m) for m in matches],
    )


@router.get("/{document_id}", response_model=DocumentResponse)
def get_document(document_id: str, db: Session = Depends(get_db)):
    return doc_to_response(_get_or_404(db, document_id))


@router.get("/{document_id}/history", response_model=list[HistoryEntryResponse])
def get_history(document_id: str, db: Session = Depends(get_db)):
    try:
        entries = workflow_service.get_history(db, document_id)
    except IntakeError as exc:
        raise http_error(exc)
    return [_history_to_response(e) for e in entries]


@router.get("/{document_id}/download")
def download_document(document_id: str, db: Session = Depends(get_db)):
    doc = _get_or_404(db, document_id)
    full_path = get_blob_store().path_for(doc.storage_path)
    if not full_path.exists():
        raise HTTPException(status_code=404, detail="Document file missing from store")
    return FileResponse(
        path=str(full_path),
        filename=doc.file_name,
        media_type=doc.mime_type or "application/octet-stream",
    )


@router.get("/{document_id}/verify", response_model=VerifyResponse)
def verify_document(document_id: str, db: Session = Depends(get_db)):
    """Re-hash the stored blob and compare against the recorded SHA-256."""
    doc = _get_or_404(db, document_id)
    full_path = get_blob_store().path_for(doc.storage_path)
    if not full_path.exists():
        raise HTTPException(status_code=404, detail="Document file missing from store")

    actual_hash = file_digest(full_path)
    return VerifyResponse(
        verified=actual_hash == doc.content_hash,
        file_name=doc.file_name,
        stored_hash=doc.content_hash,
        actual_hash=actual_hash,
    )


@router.post("/{document_id}/replace", response_model=IntakeResponse, status_code=201)
async def replace_document(
    document_id: str,
    file: UploadFile = File(...),
    ctx: CallContext = Depends(get_call_context),
    db: Session = Depends(get_db),
):
    content = await read_upload(file)
    context = IntakeContext(uploaded_by=ctx.user_id, session_token=ctx.session_token)
    try:
        result = await run_in_threadpool(
            intake_service.replace_document, db, document_id, content, file.filename or "",
            file.content_type, context,
        )
    except IntakeError as exc:
        raise http_error(exc)
    return result_to_response(result)


@router.post("/{document_id}/versions", response_model=IntakeResponse, status_code=201)
async def upload_new_version(
    document_id: str,
    file: UploadFile = File(...),
    ctx: CallContext = Depends(get_call_context),
    db: Session = Depends(get_db),
):
    content = await read_upload(file)
    context = IntakeContext(uploaded_by=ctx.user_id, session_token=ctx.session_token)
    try:
        result = await run_in_threadpool(
            intake_service.upload_as_new_version, db, document_id, content, file.filename or "",
            file.content_type, context,
        )
    except IntakeError as exc:
        raise http_error(exc)
    return result_to_response(result)


@router.get("/{document_id}/extractions", response_model=list[ExtractionRecordResponse])
def get_extractions(document_id: str, db: Session = Depends(get_db)):
    doc = _get_or_404(db, document_id)
    records = sorted(doc.extractions, key=lambda r: r.created_at)
    return [_extraction_to_response(r) for r in records]
