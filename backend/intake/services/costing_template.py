"""
The company's internal FILE COSTING sheet, described as a SheetStructure.

Value cells hold ``{key}`` markers that ``generate_costing_workbook`` fills from
a FileCostingData; totals are formulas so the sheet stays live once opened.
"""
from intake.schemas.file_costing import FileCostingData
from intake.schemas.spreadsheet import (
    AlignmentSpec,
    BorderSide,
    BorderSpec,
    CellFormat,
    ColumnSpec,
    FontSpec,
    RowSpec,
    SheetStructure,
)
from intake.services.spreadsheet_codec import generate_workbook

SHEET_NAME = "FILE COSTING"
COLUMN_WIDTHS = [30, 15, 30, 15, 15]

HEADER_BLUE = "FF4472C4"
TOTAL_BLUE = "FFD6EAF8"
ROE_YELLOW = "FFFFFF00"
INVOICE_GREEN = "FF90EE90"
MUTED_GREY = "FF808080"

USD = "#,##0.00"
ZAR = "R #,##0.00"
RATE = "#,##0.0000"
PERCENT = '0.00"%"'

BOLD = FontSpec(bold=True)
TOTAL_BORDER = BorderSpec(top=BorderSide(style="thin"))

ROW_HEIGHTS = {1: 24.0, 4: 10.0}
LAST_ROW = 33


def _label(text: str, bold: bool = False) -> CellFormat:
    return CellFormat(value=text, font=BOLD if bold else None)


def _amount(key: str, number_format: str = ZAR, fill: str | None = None) -> CellFormat:
    return CellFormat(value="{" + key + "}", number_format=number_format, fill=fill)


def _total(formula: str, number_format: str = ZAR, fill: str | None = TOTAL_BLUE) -> CellFormat:
    return CellFormat(formula=formula, number_format=number_format, fill=fill, font=BOLD, border=TOTAL_BORDER)


def _layout() -> dict[str, CellFormat]:
    return {
        "A1": CellFormat(value="{header}", font=FontSpec(bold=True, size=14, color=HEADER_BLUE)),
        "A2": CellFormat(value="{commodity}"),
        "B2": CellFormat(value="{container_type}", font=BOLD),
        "A3": _label("DELIVERY", bold=True),
        "B3": CellFormat(value="{delivery_route}"),

        "A5": _label("FOB", bold=True),
        "B5": _amount("fob_amount", USD),
        "A7": _label("TOTAL", bold=True),
        "B7": _total("=SUM(B5:B6)", USD),
        "C7": _total("=B7*B9"),

        "A9": _label("ROE - OURS"),
        "B9": _amount("roe_ours", RATE),
        "C9": CellFormat(value="ESTIMATE", font=FontSpec(italic=True, color=MUTED_GREY)),
        "A10": _label("ROE - CLIENT"),
        "B10": _amount("roe_client", RATE, fill=ROE_YELLOW),

        "C12": CellFormat(value="VAT", font=BOLD, alignment=AlignmentSpec(horizontal="center")),
        "D12": CellFormat(value="AMOUNT", font=BOLD, alignment=AlignmentSpec(horizontal="center")),
        "A14": _label("CLEARING AGENT TOTAL (EX VAT)", bold=True),
        "B14": _total("=SUM(B16:B21)"),
        "C14": _label("INC VAT", bold=True),
        "D14": _total("=D20+B14"),

        "A16": _label("CUSTOMS DUTY"),
        "B16": _amount("customs_duty"),
        "C16": _label("CUSTOMS VAT"),
        "D16": _amount("customs_vat"),
        "C17": _label("CARGO DUES VAT"),
        "D17": CellFormat(formula="=B19*0.15", number_format=ZAR),
        "A18": _label("CONTAINER LANDING"),
        "B18": _amount("container_landing"),
        "C18": _label("AGENCY VAT"),
        "D18": CellFormat(formula="=B20*0.15", number_format=ZAR),
        "A19": _label("CARGO DUES"),
        "B19": _amount("cargo_dues"),
        "A20": _label("AGENCY"),
        "B20": _amount("agency_fee"),
        "C20": _label("TOTAL VAT", bold=True),
        "D20": _total("=SUM(D16:D18)", fill=None),
        "A21": _label("ADDITIONAL CLEARING"),
        "B21": _amount("additional_clearing"),

        "A23": _label("TRANSPORT"),
        "B23": _amount("transport_cost"),
        "A24": _label("OCEAN FREIGHT"),
        "B24": _amount("shipping_cost"),
        "C24": CellFormat(value="{freight_note}", font=FontSpec(italic=True, color=MUTED_GREY)),
        "A25": _label("DIRECT BOOKING"),
        "B25": _amount("direct_booking"),
        "A26": _label("BANK CHARGES"),
        "B26": _amount("bank_charges"),
        "A27": _label("FX COMMISSION"),
        "B27": _amount("fx_commission"),

        "A30": _label("TOTAL COST ZAR", bold=True),
        "B30": _total("=C7+B14+B23+B24+B25+B26+B27"),
        "A31": _label("CLIENT INVOICE", bold=True),
        "B31": _amount("client_invoice", fill=INVOICE_GREEN),
        "A32": _label("PROFIT", bold=True),
        "B32": _total("=B31-B30", fill=None),
        "A33": _label("MARGIN %", bold=True),
        "B33": _total("=IF(B31>0,B32/B31*100,0)", PERCENT, fill=None),
    }


def build_costing_structure() -> list[SheetStructure]:
    layout = _layout()
    columns = [ColumnSpec(width=w) for w in COLUMN_WIDTHS]
    letters = "ABCDE"
    rows = []
    for r in range(1, LAST_ROW + 1):
        cells = {}
        for letter in letters:
            coordinate = f"{letter}{r}"
            cells[coordinate] = layout.get(coordinate, CellFormat())
        rows.append(RowSpec(height=ROW_HEIGHTS.get(r), cells=cells))
    return [SheetStructure(name=SHEET_NAME, columns=columns, rows=rows, merged_cells=["A1:E1"])]


def costing_header(lot_number: str, supplier_name: str, client_name: str) -> str:
    return f"LOT {lot_number} - {supplier_name} - DOC {client_name}"


def freight_note(freight_usd: float | None, freight_rate: float | None) -> str | None:
    if freight_usd is None or freight_rate is None:
        return None
    return f"${freight_usd:.0f}@{freight_rate}"


def costing_substitutions(data: FileCostingData) -> dict:
    values = data.model_dump()
    values["header"] = costing_header(data.lot_number, data.supplier_name, data.client_name)
    values["freight_note"] = freight_note(data.freight_usd, data.freight_rate)
    return values


def generate_costing_workbook(data: FileCostingData) -> bytes:
    return generate_workbook(build_costing_structure(), costing_substitutions(data))


def costing_filename(lot_number: str) -> str:
    return f"LOT_{lot_number}_FILE_COSTING.xlsx"
