"""
Review workflow for uploaded documents.

    draft -> pending_review -> approved -> archived
                            -> rejected

Every transition writes the status change, one workflow_history row and (for
approve/reject) an audit event in a single commit. Document rows carry a
version counter, so two requests racing on the same document cannot both win;
the loser gets ConcurrentUpdateError. Transitions from any state not listed
for an action raise InvalidTransitionError and record nothing.
"""
import logging
import uuid
from dataclasses import dataclass, field

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from intake.config import settings
from intake.exceptions import (
    ConcurrentUpdateError,
    DocumentNotFoundError,
    IntakeError,
    InvalidTransitionError,
    WorkflowRuleError,
)
from intake.models import Document, WorkflowHistoryEntry
from intake.schemas.extraction import ExtractedFields
from intake.services.audit_service import record_audit_event
from intake.services.notification_service import notify
from intake.utils.timestamps import utc_now

logger = logging.getLogger(__name__)

DRAFT = "draft"
PENDING_REVIEW = "pending_review"
APPROVED = "approved"
REJECTED = "rejected"
ARCHIVED = "archived"

ALLOWED_FROM = {
    "stage": {DRAFT},
    "approve": {DRAFT, PENDING_REVIEW},
    "reject": {PENDING_REVIEW},
    "archive": {APPROVED},
}

# (template, field it needs, folder used when the field is missing)
DESTINATIONS = {
    "supplier_invoice": ("/statements/{}/", "supplier_name", "/statements/"),
    "invoice": ("/statements/{}/", "supplier_name", "/invoices/"),
    "telex_release": ("/shipments/{}/", "lot_number", "/shipments/"),
    "packing_list": ("/shipments/{}/", "lot_number", "/packing_lists/"),
    "clearing_invoice": ("/clearing_agent_docs/{}/", "clearing_agent", "/clearing_agent_docs/"),
    "bill_of_lading": ("/shipments/{}/shipping_documents/", "lot_number", "/shipping_documents/"),
    "transport_invoice": (None, None, "/transport_invoices/"),
    "payment_proof": (None, None, "/payment_proofs/"),
    "file_costing": ("/shipments/{}/costings/", "lot_number", "/costings/"),
}

# Labels produced by the OCR classifier that file like one of the above.
LABEL_ALIASES = {
    "clearing_agent_invoice": "clearing_invoice",
    "commercial_invoice": "invoice",
    "file_costing_internal": "file_costing",
}


def suggest_destination_folder(classification: str | None, fields: ExtractedFields | dict | None = None) -> str:
    """Propose a folder for a document. Pure; never touches storage."""
    if isinstance(fields, ExtractedFields):
        data = fields.known()
    else:
        data = fields or {}
    label = LABEL_ALIASES.get(classification, classification)
    rule = DESTINATIONS.get(label) if label else None
    if rule is None:
        return settings.default_destination_folder

    template, key, fallback = rule
    value = data.get(key) if key else None
    if template and value not in (None, ""):
        segment = str(value).strip().replace("/", "-")
        if segment:
            return template.format(segment)
    return fallback


def get_document(db: Session, document_id: str) -> Document:
    doc = db.query(Document).filter(Document.id == document_id).first()
    if not doc:
        raise DocumentNotFoundError(document_id)
    return doc


def list_pending(db: Session) -> list[Document]:
    return (
        db.query(Document)
        .filter(Document.workflow_status == PENDING_REVIEW)
        .order_by(Document.uploaded_at)
        .all()
    )


def get_history(db: Session, document_id: str) -> list[WorkflowHistoryEntry]:
    get_document(db, document_id)
    return (
        db.query(WorkflowHistoryEntry)
        .filter(WorkflowHistoryEntry.document_id == document_id)
        .order_by(WorkflowHistoryEntry.seq)
        .all()
    )


def _require(doc: Document, action: str) -> None:
    if doc.workflow_status not in ALLOWED_FROM[action]:
        raise InvalidTransitionError(action, doc.workflow_status)


def _append_history(
    db: Session,
    doc: Document,
    from_status: str,
    actor: str,
    action: str,
    at: str,
    from_folder: str | None = None,
    to_folder: str | None = None,
    reason: str | None = None,
) -> WorkflowHistoryEntry:
    last_seq = (
        db.query(func.max(WorkflowHistoryEntry.seq))
        .filter(WorkflowHistoryEntry.document_id == doc.id)
        .scalar()
    )
    entry = WorkflowHistoryEntry(
        id=str(uuid.uuid4()),
        document_id=doc.id,
        seq=(last_seq or 0) + 1,
        from_status=from_status,
        to_status=doc.workflow_status,
        by_user=actor,
        at=at,
        action=action,
        from_folder=from_folder,
        to_folder=to_folder,
        reason=reason,
    )
    db.add(entry)
    return entry


def _commit(db: Session, document_id: str) -> None:
    try:
        db.commit()
    except (StaleDataError, IntegrityError) as exc:
        db.rollback()
        raise ConcurrentUpdateError(document_id) from exc


def stage_for_review(db: Session, document_id: str, actor: str, destination_folder: str | None = None) -> Document:
    doc = get_document(db, document_id)
    _require(doc, "stage")

    destination = destination_folder or suggest_destination_folder(doc.classification, doc.extracted_data)
    now = utc_now()
    from_status = doc.workflow_status
    doc.workflow_status = PENDING_REVIEW
    doc.requires_approval = True
    doc.destination_folder = destination
    doc.updated_at = now
    _append_history(db, doc, from_status, actor, "staged_for_review", now,
                    from_folder=doc.folder_path, to_folder=destination)
    _commit(db, document_id)
    logger.info("Document %s staged for review -> %s", document_id, destination)
    return doc


def approve(db: Session, document_id: str, actor: str, destination_folder: str | None = None) -> Document:
    doc = get_document(db, document_id)
    _require(doc, "approve")

    from_status = doc.workflow_status
    from_folder = doc.folder_path
    to_folder = destination_folder or doc.destination_folder or doc.folder_path
    now = utc_now()

    doc.workflow_status = APPROVED
    doc.folder_path = to_folder
    doc.destination_folder = to_folder
    doc.requires_approval = False
    doc.approved_by = actor
    doc.approved_at = now
    doc.updated_at = now
    _append_history(db, doc, from_status, actor, "approved_and_moved", now,
                    from_folder=from_folder, to_folder=to_folder)
    record_audit_event(db, "document_approved", document_id, actor, {
        "file_name": doc.file_name,
        "moved_from": from_folder,
        "moved_to": to_folder,
    })
    _commit(db, document_id)
    logger.info("Document %s approved by %s, moved %s -> %s", document_id, actor, from_folder, to_folder)

    notify(db, doc.uploaded_by, "document_approved", "Document approved",
           f"{doc.file_name} has been approved", "info")
    return doc


def reject(db: Session, document_id: str, actor: str, reason: str) -> Document:
    if not reason or not reason.strip():
        raise WorkflowRuleError("A rejection reason is required")
    reason = reason.strip()

    doc = get_document(db, document_id)
    _require(doc, "reject")

    from_status = doc.workflow_status
    now = utc_now()
    doc.workflow_status = REJECTED
    doc.requires_approval = False
    doc.rejected_by = actor
    doc.rejected_at = now
    doc.rejection_reason = reason
    doc.updated_at = now
    _append_history(db, doc, from_status, actor, "rejected", now, reason=reason)
    record_audit_event(db, "document_rejected", document_id, actor, {
        "file_name": doc.file_name,
        "reason": reason,
    })
    _commit(db, document_id)
    logger.info("Document %s rejected by %s: %s", document_id, actor, reason)

    notify(db, doc.uploaded_by, "document_rejected", "Document rejected",
           f"{doc.file_name} was rejected. Reason: {reason}", "warning")
    return doc


def archive(db: Session, document_id: str, actor: str, reason: str | None = None) -> Document:
    doc = get_document(db, document_id)
    _require(doc, "archive")

    from_status = doc.workflow_status
    now = utc_now()
    doc.workflow_status = ARCHIVED
    doc.updated_at = now
    _append_history(db, doc, from_status, actor, "archived", now, reason=reason)
    _commit(db, document_id)
    logger.info("Document %s archived by %s", document_id, actor)
    return doc


@dataclass
class BulkApproveResult:
    approved: list[str] = field(default_factory=list)
    failures: list[tuple[str, str]] = field(default_factory=list)

    @property
    def approved_count(self) -> int:
        return len(self.approved)

    @property
    def failed_count(self) -> int:
        return len(self.failures)


def bulk_approve(db: Session, document_ids: list[str], actor: str,
                 destination_folder: str | None = None) -> BulkApproveResult:
    """Approve each document on its own; one failure never aborts the batch."""
    result = BulkApproveResult()
    for document_id in document_ids:
        try:
            approve(db, document_id, actor, destination_folder)
        except (IntakeError, SQLAlchemyError) as exc:
            db.rollback()
            logger.warning("Bulk approve skipped %s: %s", document_id, exc)
            result.failures.append((document_id, str(exc)))
        else:
            result.approved.append(document_id)
    logger.info("Bulk approve by %s: %d approved, %d failed", actor, result.approved_count, result.failed_count)
    return result
