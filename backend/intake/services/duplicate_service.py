"""
Advisory duplicate detection for incoming documents.

Five strategies run independently over the documents uploaded inside the
lookback window and are unioned: exact filename, fuzzy filename, invoice
number, (amount, date, supplier) tuple and content hash. The check takes no
locks, so two simultaneous uploads of the same file can both come back clean.
"""
import logging
import uuid
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from intake.config import settings
from intake.models import Document, DuplicateCheck, DuplicateSettings
from intake.schemas.extraction import ExtractedFields
from intake.schemas.settings import DuplicateDetectionSettings
from intake.utils.fingerprint import content_digest
from intake.utils.similarity import filename_similarity
from intake.utils.timestamps import days_ago, utc_now

logger = logging.getLogger(__name__)

EXACT_FILENAME = "exact_filename"
FUZZY_FILENAME = "fuzzy_filename"
INVOICE_NUMBER = "invoice_number"
FIELD_TUPLE = "field_tuple"
CONTENT_HASH = "content_hash"

# Matches that auto-block may refuse outright.
EXACT_MATCH_TYPES = {EXACT_FILENAME, CONTENT_HASH}


@dataclass(frozen=True)
class DuplicateMatch:
    match_type: str
    confidence: float
    document_id: str
    file_name: str
    uploaded_at: str
    reason: str

    @property
    def is_exact(self) -> bool:
        return self.match_type in EXACT_MATCH_TYPES


def default_detection_settings() -> DuplicateDetectionSettings:
    return DuplicateDetectionSettings(
        duplicate_detection_enabled=settings.duplicate_detection_enabled,
        filename_similarity_threshold=settings.filename_similarity_threshold,
        auto_block_exact_duplicates=settings.auto_block_exact_duplicates,
        check_invoice_numbers=settings.check_invoice_numbers,
        duplicate_check_days=settings.duplicate_check_days,
    )


def load_detection_settings(db: Session) -> DuplicateDetectionSettings:
    row = db.query(DuplicateSettings).filter(DuplicateSettings.id == 1).first()
    if not row:
        return default_detection_settings()
    return DuplicateDetectionSettings(
        duplicate_detection_enabled=row.duplicate_detection_enabled,
        filename_similarity_threshold=row.filename_similarity_threshold,
        auto_block_exact_duplicates=row.auto_block_exact_duplicates,
        check_invoice_numbers=row.check_invoice_numbers,
        duplicate_check_days=row.duplicate_check_days,
    )


def save_detection_settings(db: Session, detection: DuplicateDetectionSettings) -> DuplicateDetectionSettings:
    row = db.query(DuplicateSettings).filter(DuplicateSettings.id == 1).first()
    if not row:
        row = DuplicateSettings(id=1)
        db.add(row)
    for key, value in detection.model_dump().items():
        setattr(row, key, value)
    row.updated_at = utc_now()
    db.commit()
    return load_detection_settings(db)


def _same_value(a, b) -> bool:
    return a is not None and b is not None and a == b


def _match(doc: Document, match_type: str, confidence: float, reason: str) -> DuplicateMatch:
    return DuplicateMatch(
        match_type=match_type,
        confidence=confidence,
        document_id=doc.id,
        file_name=doc.file_name,
        uploaded_at=doc.uploaded_at,
        reason=reason,
    )


def match_candidates(
    filename: str,
    content_hash: str,
    fields: ExtractedFields | None,
    documents: Iterable[Document],
    detection: DuplicateDetectionSettings,
) -> list[DuplicateMatch]:
    """Run every strategy against ``documents`` and rank the union."""
    candidate_name = filename.lower()
    threshold = detection.filename_similarity_threshold
    invoice_number = fields.invoice_number if fields else None
    tuple_check = bool(
        fields and fields.total_amount is not None and fields.invoice_date and fields.supplier_name
    )

    found: list[DuplicateMatch] = []
    for doc in documents:
        data = doc.extracted_data or {}
        exact = doc.file_name.lower() == candidate_name

        if exact:
            found.append(_match(doc, EXACT_FILENAME, 1.0, "Identical filename"))
        elif threshold < 1:
            similarity = filename_similarity(filename, doc.file_name)
            if similarity >= threshold:
                found.append(_match(
                    doc, FUZZY_FILENAME, similarity,
                    f"{similarity * 100:.0f}% filename similarity",
                ))

        if detection.check_invoice_numbers and invoice_number:
            if _same_value(data.get("invoice_number"), invoice_number):
                found.append(_match(doc, INVOICE_NUMBER, 0.95, f"Same invoice number: {invoice_number}"))

        if tuple_check and (
            _same_value(data.get("total_amount"), fields.total_amount)
            and _same_value(data.get("invoice_date"), fields.invoice_date)
            and _same_value(data.get("supplier_name"), fields.supplier_name)
        ):
            found.append(_match(doc, FIELD_TUPLE, 0.90, "Same amount, date, and supplier"))

        if doc.content_hash and doc.content_hash == content_hash:
            found.append(_match(doc, CONTENT_HASH, 1.0, "Identical file contents (100% match)"))

    best: dict[str, DuplicateMatch] = {}
    for match in found:
        current = best.get(match.document_id)
        if current is None or match.confidence > current.confidence:
            best[match.document_id] = match
    return sorted(best.values(), key=lambda m: m.confidence, reverse=True)


def _log_check(db: Session, filename: str, content_hash: str, matches: list[DuplicateMatch],
               checked_by: str | None) -> None:
    top = matches[0] if matches else None
    try:
        db.add(DuplicateCheck(
            id=str(uuid.uuid4()),
            file_name=filename,
            content_hash=content_hash,
            match_count=len(matches),
            best_match_id=top.document_id if top else None,
            best_match_type=top.match_type if top else None,
            best_confidence=top.confidence if top else None,
            checked_by=checked_by,
            checked_at=utc_now(),
        ))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.warning("Could not record duplicate check for %s", filename, exc_info=True)


def find_duplicates(
    db: Session,
    filename: str,
    content: bytes,
    extracted: ExtractedFields | None = None,
    detection: DuplicateDetectionSettings | None = None,
    checked_by: str | None = None,
) -> list[DuplicateMatch]:
    """Ranked duplicate candidates for an incoming file. Never raises."""
    try:
        detection = detection or load_detection_settings(db)
        if not detection.duplicate_detection_enabled:
            return []
        content_hash = content_digest(content)

        query = db.query(Document)
        if detection.duplicate_check_days > 0:
            query = query.filter(Document.uploaded_at >= days_ago(detection.duplicate_check_days))
        matches = match_candidates(filename, content_hash, extracted, query.all(), detection)
    except Exception:
        logger.exception("Duplicate lookup failed for %s; treating as no duplicates", filename)
        db.rollback()
        return []

    if matches:
        logger.info("%d possible duplicate(s) for %s, best %s at %.2f",
                    len(matches), filename, matches[0].match_type, matches[0].confidence)
    _log_check(db, filename, content_hash, matches, checked_by)
    return matches
