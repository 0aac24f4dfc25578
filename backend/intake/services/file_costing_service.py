"""
FileCosting lifecycle: draft -> pending_review -> finalized.

The grand total is never accepted from callers; it is recomputed from the three
subtotals on every write. Finalized costings are read-only here.
"""
import logging
import uuid

from sqlalchemy.orm import Session

from intake.exceptions import FileCostingNotFoundError, InvalidTransitionError, WorkflowRuleError
from intake.models import Document, FileCosting
from intake.schemas.extraction import CostingFields
from intake.schemas.file_costing import FileCostingCreate, FileCostingUpdate
from intake.utils.timestamps import utc_now

logger = logging.getLogger(__name__)

DRAFT = "draft"
PENDING_REVIEW = "pending_review"
FINALIZED = "finalized"

TRANSPORT_LABELS = {"transport_invoice"}
CLEARING_LABELS = {"clearing_invoice", "clearing_agent_invoice"}


def _recompute(costing: FileCosting) -> None:
    costing.grand_total_zar = round(
        (costing.transport_cost_zar or 0.0)
        + (costing.clearing_cost_zar or 0.0)
        + (costing.other_costs_zar or 0.0),
        2,
    )


def get_file_costing(db: Session, costing_id: str) -> FileCosting:
    costing = db.query(FileCosting).filter(FileCosting.id == costing_id).first()
    if not costing:
        raise FileCostingNotFoundError(costing_id)
    return costing


def list_file_costings(db: Session, shipment_id: str | None = None, status: str | None = None) -> list[FileCosting]:
    query = db.query(FileCosting)
    if shipment_id:
        query = query.filter(FileCosting.shipment_id == shipment_id)
    if status:
        query = query.filter(FileCosting.status == status)
    return query.order_by(FileCosting.created_at.desc()).all()


def create_file_costing(db: Session, data: FileCostingCreate, created_by: str | None) -> FileCosting:
    now = utc_now()
    costing = FileCosting(
        id=str(uuid.uuid4()),
        shipment_id=data.shipment_id,
        lot_number=data.lot_number,
        transport_documents=list(data.transport_documents),
        clearing_documents=list(data.clearing_documents),
        other_documents=list(data.other_documents),
        transport_cost_zar=data.transport_cost_zar,
        clearing_cost_zar=data.clearing_cost_zar,
        other_costs_zar=data.other_costs_zar,
        status=DRAFT,
        notes=data.notes,
        created_by=created_by,
        created_at=now,
        updated_at=now,
    )
    _recompute(costing)
    db.add(costing)
    db.commit()
    db.refresh(costing)
    logger.info("File costing %s created for shipment %s", costing.id, costing.shipment_id)
    return costing


def create_from_costing_sheet(
    db: Session,
    document: Document,
    fields: CostingFields,
    shipment_id: str,
    created_by: str | None,
) -> FileCosting:
    """Draft costing seeded from the totals extracted out of a costing sheet."""
    transport = fields.transport_cost or 0.0
    clearing = fields.clearing_total or 0.0
    total = fields.total_cost_zar or 0.0
    data = FileCostingCreate(
        shipment_id=shipment_id,
        lot_number=fields.lot_number,
        other_documents=[document.id],
        transport_cost_zar=transport,
        clearing_cost_zar=clearing,
        other_costs_zar=round(total - transport - clearing, 2),
        notes=f"Created from {document.file_name}",
    )
    return create_file_costing(db, data, created_by)


def update_file_costing(db: Session, costing_id: str, changes: FileCostingUpdate) -> FileCosting:
    costing = get_file_costing(db, costing_id)
    if costing.status == FINALIZED:
        raise WorkflowRuleError("Finalized file costings cannot be changed")

    for key, value in changes.model_dump(exclude_unset=True).items():
        setattr(costing, key, value)
    _recompute(costing)
    costing.updated_at = utc_now()
    db.commit()
    db.refresh(costing)
    return costing


def submit_for_review(db: Session, costing_id: str) -> FileCosting:
    costing = get_file_costing(db, costing_id)
    if costing.status != DRAFT:
        raise InvalidTransitionError("submit", costing.status, entity="file costing")
    costing.status = PENDING_REVIEW
    costing.updated_at = utc_now()
    db.commit()
    db.refresh(costing)
    logger.info("File costing %s submitted for review", costing_id)
    return costing


def finalize(db: Session, costing_id: str, actor: str) -> FileCosting:
    costing = get_file_costing(db, costing_id)
    if costing.status != PENDING_REVIEW:
        raise InvalidTransitionError("finalize", costing.status, entity="file costing")
    now = utc_now()
    _recompute(costing)
    costing.status = FINALIZED
    costing.finalized_at = now
    costing.finalized_by = actor
    costing.updated_at = now
    db.commit()
    db.refresh(costing)
    logger.info("File costing %s finalized by %s", costing_id, actor)
    return costing


def shipment_documents(db: Session, shipment_id: str) -> dict[str, list[str]]:
    """Group a shipment's current documents by the costing bucket they feed."""
    docs = (
        db.query(Document)
        .filter(
            Document.shipment_id == shipment_id,
            Document.is_latest_version.is_(True),
            Document.workflow_status != "rejected",
        )
        .order_by(Document.uploaded_at)
        .all()
    )
    grouped: dict[str, list[str]] = {"transport_documents": [], "clearing_documents": [], "other_documents": []}
    for doc in docs:
        if doc.classification in TRANSPORT_LABELS:
            grouped["transport_documents"].append(doc.id)
        elif doc.classification in CLEARING_LABELS:
            grouped["clearing_documents"].append(doc.id)
        else:
            grouped["other_documents"].append(doc.id)
    return grouped
