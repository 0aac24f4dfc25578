"""
Per-file entry point shared by the upload API and the channel webhooks.

An intake either persists a Document (possibly flagged ``needs_review``) or
raises with a human-readable reason; it never leaves a stored blob without a
document row. Duplicate detection, staging and costing creation are advisory
and only logged when they fail.
"""
import dataclasses
import logging
import uuid
from dataclasses import dataclass, field
from pathlib import PurePath

from pydantic import ValidationError
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from intake.config import settings
from intake.exceptions import ConcurrentUpdateError, DuplicateBlockedError, IntakeError, IntakeRejectedError
from intake.models import Document, ExtractionRecord, Shipment
from intake.schemas.extraction import CostingFields, ExtractedFields
from intake.schemas.settings import DuplicateDetectionSettings
from intake.services import workflow_service
from intake.services.audit_service import record_audit_event
from intake.services.blob_store import BlobStore, get_blob_store
from intake.services.classification_service import FILE_COSTING, classify, is_spreadsheet
from intake.services.costing_extractor import EXTRACTION_CONFIDENCE, extract_costing_fields
from intake.services.duplicate_service import (
    DuplicateMatch,
    default_detection_settings,
    find_duplicates,
    load_detection_settings,
)
from intake.services.file_costing_service import create_from_costing_sheet
from intake.services.spreadsheet_codec import parse_workbook
from intake.utils.fingerprint import content_digest
from intake.utils.similarity import VERSION_SUFFIX
from intake.utils.timestamps import utc_now

logger = logging.getLogger(__name__)


@dataclass
class IntakeContext:
    uploaded_by: str
    channel: str = "upload"
    session_token: str | None = None
    shipment_id: str | None = None
    folder: str | None = None
    document_type: str | None = None
    extracted_fields: dict | None = None
    caption: str | None = None


@dataclass
class IntakeResult:
    document: Document
    duplicates: list[DuplicateMatch] = field(default_factory=list)
    needs_review: bool = True
    matched_shipment_id: str | None = None
    extraction: ExtractionRecord | None = None
    file_costing_id: str | None = None


def versioned_filename(filename: str, version: int) -> str:
    path = PurePath(filename)
    stem = VERSION_SUFFIX.sub("", path.stem)
    return f"{stem}_v{version}{path.suffix}"


def session_reference(token: str | None) -> str | None:
    """Stable, non-reversible handle for a session token."""
    return content_digest(token.encode())[:16] if token else None


def match_shipment(db: Session, shipment_id: str | None, lot_number: str | None) -> Shipment | None:
    if shipment_id:
        shipment = db.query(Shipment).filter(Shipment.id == shipment_id).first()
        if shipment is None:
            logger.warning("Intake named unknown shipment %s", shipment_id)
        return shipment
    if not lot_number:
        return None
    shipment = db.query(Shipment).filter(Shipment.lot_number == lot_number).first()
    if shipment:
        return shipment
    return (
        db.query(Shipment)
        .filter(Shipment.lot_number.ilike(f"%{lot_number}%"))
        .order_by(Shipment.created_at.desc())
        .first()
    )


def _check_payload(content: bytes, filename: str) -> None:
    if not filename or not filename.strip():
        raise IntakeRejectedError("A file name is required")
    if not content:
        raise IntakeRejectedError("Empty file")
    if len(content) > settings.max_upload_bytes:
        raise IntakeRejectedError(f"File too large (max {settings.max_upload_bytes} bytes)", status_code=413)


def _merge_fields(extracted: ExtractedFields, supplied: dict | None) -> ExtractedFields:
    """Caller-supplied fields fill gaps; values read from the file win."""
    if not supplied:
        return extracted
    merged = {k: v for k, v in supplied.items() if v is not None}
    merged.update(extracted.known())
    try:
        return type(extracted)(**merged)
    except ValidationError as exc:
        fields = ", ".join(str(err["loc"][0]) for err in exc.errors() if err["loc"])
        raise IntakeRejectedError(f"Invalid extracted_fields: {fields}") from exc


def _detection_settings(db: Session) -> DuplicateDetectionSettings:
    try:
        return load_detection_settings(db)
    except SQLAlchemyError:
        db.rollback()
        logger.warning("Could not load duplicate settings; using defaults", exc_info=True)
        return default_detection_settings()


def _start_new_version(db: Session, previous: Document, doc: Document) -> None:
    """Attach ``doc`` to the version chain of ``previous`` and move the latest flag."""
    root_id = previous.parent_document or previous.id
    chain = (
        db.query(Document)
        .filter(or_(Document.id == root_id, Document.parent_document == root_id))
        .all()
    )
    doc.version = max(d.version or 1 for d in chain) + 1
    doc.parent_document = root_id
    for member in chain:
        if member.is_latest_version:
            member.is_latest_version = False
            member.updated_at = doc.uploaded_at


def _ingest(
    db: Session,
    content: bytes,
    filename: str,
    mime_type: str | None,
    context: IntakeContext,
    store: BlobStore | None = None,
    check_duplicates: bool = True,
    version_of: Document | None = None,
    audit_event: tuple[str, dict] | None = None,
) -> IntakeResult:
    _check_payload(content, filename)
    store = store or get_blob_store()
    content_hash = content_digest(content)

    structures = metadata = None
    if is_spreadsheet(filename):
        # A corrupt workbook fails here, before anything is stored.
        structures, metadata = parse_workbook(content)

    classification = classify(filename, content, mime_type, context.document_type, structures)
    costing: CostingFields | None = None
    if classification == FILE_COSTING and structures:
        costing = extract_costing_fields(structures)
        fields: ExtractedFields = costing
    else:
        fields = ExtractedFields(document_type=classification)
    fields = _merge_fields(fields, context.extracted_fields)
    if costing is not None:
        costing = fields

    duplicates: list[DuplicateMatch] = []
    if check_duplicates:
        detection = _detection_settings(db)
        duplicates = find_duplicates(db, filename, content, fields, detection, checked_by=context.uploaded_by)
        exact = [m for m in duplicates if m.is_exact]
        if detection.auto_block_exact_duplicates and exact:
            logger.info("Blocked %s: exact duplicate of document %s", filename, exact[0].document_id)
            raise DuplicateBlockedError(
                f"{filename} duplicates {exact[0].file_name} ({exact[0].reason})", duplicates,
            )

    shipment = match_shipment(db, context.shipment_id, fields.lot_number)
    needs_review = shipment is None or bool(duplicates) or classification is None

    now = utc_now()
    folder = context.folder or settings.default_destination_folder
    doc = Document(
        id=str(uuid.uuid4()),
        original_name=filename,
        file_name=filename,
        mime_type=mime_type,
        file_size=len(content),
        content_hash=content_hash,
        classification=classification,
        extracted_data=fields.known(),
        format_metadata=metadata.model_dump() if metadata else None,
        workflow_status=workflow_service.DRAFT,
        requires_approval=False,
        needs_review=needs_review,
        folder_path=folder,
        shipment_id=shipment.id if shipment else None,
        uploaded_by=context.uploaded_by,
        upload_channel=context.channel,
        version=1,
        is_latest_version=True,
        uploaded_at=now,
        updated_at=now,
    )
    if version_of is not None:
        _start_new_version(db, version_of, doc)
        doc.file_name = versioned_filename(filename, doc.version)

    extraction = ExtractionRecord(
        id=str(uuid.uuid4()),
        document_id=doc.id,
        document_type=fields.document_type or classification,
        extracted_data=fields.known(),
        confidence=EXTRACTION_CONFIDENCE if costing is not None else None,
        matched_shipment_id=doc.shipment_id,
        needs_review=needs_review,
        created_at=now,
    )

    doc.storage_path = store.put(folder, doc.file_name, content)
    try:
        db.add(doc)
        db.add(extraction)
        record_audit_event(db, "document_uploaded", doc.id, context.uploaded_by, {
            "channel": context.channel,
            "session": session_reference(context.session_token),
            "file_name": doc.file_name,
            "caption": context.caption,
        })
        if audit_event is not None:
            event_type, event_metadata = audit_event
            record_audit_event(db, event_type, doc.id, context.uploaded_by, event_metadata)
        db.commit()
    except Exception as exc:
        db.rollback()
        store.delete(doc.storage_path)
        if isinstance(exc, StaleDataError):
            raise ConcurrentUpdateError(version_of.id if version_of else doc.id) from exc
        raise

    document_id = doc.id
    logger.info(
        "Intake via %s by %s: %s -> document %s (%s), %d duplicate(s), needs_review=%s",
        context.channel, context.uploaded_by, filename, document_id, classification,
        len(duplicates), needs_review,
    )

    destination = workflow_service.suggest_destination_folder(classification, fields)
    try:
        workflow_service.stage_for_review(db, document_id, context.uploaded_by, destination)
    except (IntakeError, SQLAlchemyError):
        db.rollback()
        logger.exception("Document %s stored but could not be staged; left in draft", document_id)

    file_costing_id = None
    if costing is not None and shipment is not None:
        try:
            file_costing = create_from_costing_sheet(db, doc, costing, shipment.id, context.uploaded_by)
            file_costing_id = file_costing.id
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Could not create file costing from document %s", document_id)

    db.refresh(doc)
    return IntakeResult(
        document=doc,
        duplicates=duplicates,
        needs_review=needs_review,
        matched_shipment_id=doc.shipment_id,
        extraction=extraction,
        file_costing_id=file_costing_id,
    )


def intake(
    db: Session,
    content: bytes,
    filename: str,
    mime_type: str | None,
    context: IntakeContext,
    store: BlobStore | None = None,
) -> IntakeResult:
    return _ingest(db, content, filename, mime_type, context, store=store)


def upload_as_new_version(
    db: Session,
    existing_id: str,
    content: bytes,
    filename: str,
    mime_type: str | None,
    context: IntakeContext,
    store: BlobStore | None = None,
) -> IntakeResult:
    existing = workflow_service.get_document(db, existing_id)
    context = dataclasses.replace(
        context,
        folder=context.folder or existing.folder_path,
        shipment_id=context.shipment_id or existing.shipment_id,
    )
    result = _ingest(
        db, content, filename, mime_type, context,
        store=store,
        check_duplicates=False,
        version_of=existing,
        audit_event=("document_version_uploaded", {"previous_document": existing_id}),
    )
    logger.info("Document %s uploaded as version %d of %s",
                result.document.id, result.document.version, existing_id)
    return result


def replace_document(
    db: Session,
    existing_id: str,
    content: bytes,
    filename: str,
    mime_type: str | None,
    context: IntakeContext,
    store: BlobStore | None = None,
) -> IntakeResult:
    """Upload a replacement into the same folder and retire the old document."""
    existing = workflow_service.get_document(db, existing_id)
    context = dataclasses.replace(
        context,
        folder=existing.folder_path,
        shipment_id=context.shipment_id or existing.shipment_id,
    )
    result = _ingest(
        db, content, filename, mime_type, context,
        store=store,
        check_duplicates=False,
        audit_event=("document_replaced", {"replaced_document": existing_id, "reason": "duplicate_replacement"}),
    )
    new_id = result.document.id
    actor = context.uploaded_by

    existing = workflow_service.get_document(db, existing_id)
    existing.replaced_by = new_id
    existing.updated_at = utc_now()
    try:
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise ConcurrentUpdateError(existing_id) from exc

    status = existing.workflow_status
    if status == workflow_service.APPROVED:
        workflow_service.archive(db, existing_id, actor, reason=f"Replaced by {new_id}")
    elif status == workflow_service.PENDING_REVIEW:
        workflow_service.reject(db, existing_id, actor, f"Replaced by {result.document.file_name}")
    logger.info("Document %s replaced by %s", existing_id, new_id)
    return result
