"""
Deterministic document classification.

Order of precedence: an explicit hint from the caller, the file name, the
costing-sheet header of a parsed workbook, then keywords in PDF text.
"""
import logging
import re
from io import BytesIO
from pathlib import PurePath

from intake.schemas.spreadsheet import SheetStructure
from intake.services.costing_extractor import is_costing_header

logger = logging.getLogger(__name__)

FILE_COSTING = "file_costing"
SPREADSHEET_SUFFIXES = {".xlsx", ".xlsm"}
PDF_MIME_TYPES = {"application/pdf", "application/x-pdf"}

# (label, phrases matched anywhere in the name, whole tokens)
FILENAME_RULES = [
    (FILE_COSTING, ("file_costing", "file costing", "costing"), ()),
    ("bill_of_lading", ("bill_of_lading", "bill of lading", "billoflading"), ("bol", "bl")),
    ("packing_list", ("packing",), ()),
    ("telex_release", ("telex",), ()),
    ("payment_proof", ("proof_of_payment", "proof of payment", "payment"), ("pop",)),
    ("transport_invoice", ("transport",), ()),
    ("clearing_invoice", ("clearing",), ()),
    ("supplier_invoice", ("statement",), ()),
    ("invoice", ("invoice",), ("inv",)),
]

TEXT_RULES = [
    ("bill_of_lading", ("BILL OF LADING",)),
    ("packing_list", ("PACKING LIST",)),
    ("telex_release", ("TELEX RELEASE",)),
    ("payment_proof", ("PROOF OF PAYMENT", "PAYMENT CONFIRMATION")),
    ("clearing_invoice", ("CLEARING AGENT", "CUSTOMS CLEARING")),
    ("transport_invoice", ("TRANSPORT",)),
    ("invoice", ("TAX INVOICE", "COMMERCIAL INVOICE", "INVOICE")),
]


def is_spreadsheet(filename: str) -> bool:
    return PurePath(filename).suffix.lower() in SPREADSHEET_SUFFIXES


def is_pdf(filename: str, mime_type: str | None) -> bool:
    return mime_type in PDF_MIME_TYPES or PurePath(filename).suffix.lower() == ".pdf"


def classify_filename(filename: str) -> str | None:
    stem = PurePath(filename).stem.lower()
    tokens = set(re.split(r"[^a-z0-9]+", stem))
    for label, phrases, words in FILENAME_RULES:
        if any(p in stem for p in phrases) or tokens.intersection(words):
            return label
    return None


def classify_structures(structures: list[SheetStructure] | None) -> str | None:
    if not structures or not structures[0].rows:
        return None
    header = structures[0].rows[0].cells.get("A1")
    if header is not None and isinstance(header.value, str) and is_costing_header(header.value):
        return FILE_COSTING
    return None


def extract_pdf_text(content: bytes) -> str:
    try:
        import pypdf
        reader = pypdf.PdfReader(BytesIO(content))
        return "\n".join(page.extract_text() or "" for page in reader.pages)
    except Exception:
        logger.debug("No extractable PDF text", exc_info=True)
        return ""


def classify_text(text: str) -> str | None:
    upper = text.upper()
    for label, phrases in TEXT_RULES:
        if any(p in upper for p in phrases):
            return label
    return None


def classify(
    filename: str,
    content: bytes,
    mime_type: str | None = None,
    hint: str | None = None,
    structures: list[SheetStructure] | None = None,
) -> str | None:
    if hint:
        return hint
    label = classify_filename(filename) or classify_structures(structures)
    if label:
        return label
    if is_pdf(filename, mime_type):
        return classify_text(extract_pdf_text(content))
    return None
