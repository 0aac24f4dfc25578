"""
Pull business fields out of a parsed FILE COSTING sheet.

Extraction is a chain of FieldLocators run in priority order; the first locator
to produce a non-null value for a field wins. The coordinate locator knows the
fixed layout of the company template, the label scanner finds values by their
column-A caption wherever they sit. Totals are always recomputed here rather
than read from formula cells.
"""
import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Protocol

from intake.schemas.extraction import CostingFields
from intake.schemas.spreadsheet import SheetStructure
from intake.services.spreadsheet_codec import parse_workbook

logger = logging.getLogger(__name__)

COSTING_DOCUMENT_TYPE = "file_costing"
EXTRACTION_CONFIDENCE = 0.95

HEADER_PATTERN = re.compile(r"LOT\s*(\d+)\s*-\s*([^-]+?)\s*-\s*(?:DOC\s*)?(.+)", re.IGNORECASE)
AMOUNT_NOISE = re.compile(r"[R$€£,\s]")
FREIGHT_NOTE = re.compile(r"\$(\d+(?:\.\d+)?)@([\d.]+)")


def parse_amount(value: Any) -> float | None:
    """Numeric cell value, or None when blank or not a number. Never 0 for blank."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = AMOUNT_NOISE.sub("", str(value))
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class SheetView:
    """Read-only coordinate access over one parsed sheet."""

    def __init__(self, sheet: SheetStructure):
        self.sheet = sheet
        self._cells = {}
        for row in sheet.rows:
            self._cells.update(row.cells)

    def value(self, coordinate: str) -> Any:
        cell = self._cells.get(coordinate)
        return cell.value if cell is not None else None

    def text(self, coordinate: str) -> str | None:
        return _text(self.value(coordinate))

    def row_count(self) -> int:
        return len(self.sheet.rows)


class FieldLocator(Protocol):
    def locate(self, sheet: SheetView) -> dict[str, Any]: ...


# ---------------------------------------------------------------------------
# Fixed coordinates of the company template
# ---------------------------------------------------------------------------

TEXT_CELLS = {
    "commodity": "A2",
    "container_type": "B2",
    "delivery_route": "B3",
}

AMOUNT_CELLS = {
    "fob_amount": "B5",
    "fob_total_usd": "B7",
    "fob_total_zar": "C7",
    "roe_ours": "B9",
    "roe_client": "B10",
    "customs_duty": "B16",
    "customs_vat": "D16",
    "container_landing": "B18",
    "cargo_dues": "B19",
    "agency_fee": "B20",
    "additional_clearing": "B21",
}


class CoordinateLocator:
    def __init__(self, header_cell: str = "A1", text_cells: dict[str, str] | None = None,
                 amount_cells: dict[str, str] | None = None):
        self.header_cell = header_cell
        self.text_cells = text_cells or TEXT_CELLS
        self.amount_cells = amount_cells or AMOUNT_CELLS

    def locate(self, sheet: SheetView) -> dict[str, Any]:
        found: dict[str, Any] = {}
        header = sheet.text(self.header_cell)
        m = HEADER_PATTERN.search(header) if header else None
        if m:
            found["lot_number"] = m.group(1)
            found["supplier_name"] = m.group(2).strip()
            found["client_name"] = m.group(3).strip()
        for field, coordinate in self.text_cells.items():
            found[field] = sheet.text(coordinate)
        for field, coordinate in self.amount_cells.items():
            found[field] = parse_amount(sheet.value(coordinate))
        return found


# ---------------------------------------------------------------------------
# Caption scanning
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LabelRule:
    field: str
    exact: tuple[str, ...] = ()
    any_of: tuple[str, ...] = ()
    all_of: tuple[str, ...] = ()
    none_of: tuple[str, ...] = ()
    freight_note: bool = False

    def matches(self, label: str) -> bool:
        if any(word in label for word in self.none_of):
            return False
        if label in self.exact:
            return True
        if self.any_of and any(word in label for word in self.any_of):
            return True
        return bool(self.all_of) and all(word in label for word in self.all_of)


LABEL_RULES = (
    LabelRule("shipping_cost", any_of=("KELLILAH", "KELILAH", "OCEAN FREIGHT"), freight_note=True),
    LabelRule("transport_cost", exact=("TRANSPORT",), any_of=("BARAKUDA",)),
    LabelRule("additional_costs", any_of=("SRS", "SRD", "ADDITIONAL"), none_of=("CLEARING",)),
    LabelRule("direct_booking", any_of=("DIRECT BOOKING",)),
    LabelRule("bank_charges", all_of=("BANK", "CHARGE")),
    LabelRule("fx_commission", all_of=("FX", "COMMISSION")),
)


class LabelScanLocator:
    def __init__(self, rules: Iterable[LabelRule] = LABEL_RULES, label_column: str = "A",
                 value_column: str = "B", note_column: str = "C"):
        self.rules = tuple(rules)
        self.label_column = label_column
        self.value_column = value_column
        self.note_column = note_column

    def locate(self, sheet: SheetView) -> dict[str, Any]:
        try:
            return self._scan(sheet)
        except Exception:
            logger.warning("Label scan failed on sheet %r", sheet.sheet.name, exc_info=True)
            return {}

    def _scan(self, sheet: SheetView) -> dict[str, Any]:
        found: dict[str, Any] = {}
        for r in range(1, sheet.row_count() + 1):
            label = sheet.text(f"{self.label_column}{r}")
            if not label:
                continue
            label = label.upper()
            for rule in self.rules:
                if found.get(rule.field) is not None or not rule.matches(label):
                    continue
                found[rule.field] = parse_amount(sheet.value(f"{self.value_column}{r}"))
                if rule.freight_note:
                    note = sheet.text(f"{self.note_column}{r}") or ""
                    m = FREIGHT_NOTE.search(note)
                    if m:
                        found["freight_usd"] = float(m.group(1))
                        found["freight_rate"] = float(m.group(2))
        return found


DEFAULT_LOCATORS: tuple[FieldLocator, ...] = (CoordinateLocator(), LabelScanLocator())


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

def _sum(*values: float | None) -> float:
    return sum(v for v in values if v is not None)


def derive_totals(fields: CostingFields) -> CostingFields:
    """Fill in computed totals; raw fields are left exactly as found."""
    fob_usd = fields.fob_total_usd if fields.fob_total_usd is not None else fields.fob_amount
    fob_zar = fields.fob_total_zar
    if fob_zar is None and fob_usd is not None and fields.roe_ours is not None:
        fob_zar = round(fob_usd * fields.roe_ours, 2)

    clearing_total = _sum(
        fields.customs_duty,
        fields.container_landing,
        fields.cargo_dues,
        fields.agency_fee,
        fields.additional_clearing,
    )
    total_cost = _sum(
        fob_zar,
        clearing_total,
        fields.shipping_cost,
        fields.transport_cost,
        fields.additional_costs,
        fields.direct_booking,
        fields.bank_charges,
        fields.fx_commission,
    )
    return fields.model_copy(update={
        "fob_total_usd": fob_usd,
        "fob_total_zar": fob_zar,
        "clearing_total": round(clearing_total, 2),
        "total_cost_zar": round(total_cost, 2),
    })


def extract_costing_fields(
    structures: list[SheetStructure],
    locators: Iterable[FieldLocator] = DEFAULT_LOCATORS,
) -> CostingFields:
    if not structures:
        return derive_totals(CostingFields(document_type=COSTING_DOCUMENT_TYPE))

    sheet = SheetView(structures[0])
    merged: dict[str, Any] = {}
    for locator in locators:
        for field, value in locator.locate(sheet).items():
            if merged.get(field) is None and value is not None:
                merged[field] = value

    fields = CostingFields(document_type=COSTING_DOCUMENT_TYPE, **merged)
    return derive_totals(fields)


def extract_from_workbook(content: bytes) -> CostingFields:
    structures, _ = parse_workbook(content)
    return extract_costing_fields(structures)


def is_costing_header(text: str | None) -> bool:
    return bool(text and HEADER_PATTERN.search(text))
