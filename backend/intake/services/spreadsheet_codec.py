"""
Lossless-for-what-we-model conversion between xlsx bytes and SheetStructure.

``parse_workbook`` walks every sheet, row and cell up to the sheet's extent,
keeping empty rows and cells so that coordinates survive. ``generate_workbook``
replays a structure (parsed or hand-built) into a new workbook, substituting
whole-cell ``{key}`` markers along the way.
"""
import logging
from io import BytesIO
from typing import Any
from zipfile import BadZipFile

import openpyxl
from openpyxl.cell.cell import MergedCell
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import column_index_from_string, get_column_letter
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.worksheet.cell_range import CellRange
from openpyxl.worksheet.formula import ArrayFormula

from intake.exceptions import MalformedWorkbookError
from intake.schemas.spreadsheet import (
    AlignmentSpec,
    BorderSide,
    BorderSpec,
    CellFormat,
    ColumnSpec,
    FontSpec,
    FormatMetadata,
    RowSpec,
    SheetStructure,
)

logger = logging.getLogger(__name__)

DEFAULT_BORDER_COLOR = "FF000000"
# Workbook default fonts; a cell carrying one of these has no font of its own.
DEFAULT_FONTS = {(None, None), ("Calibri", 11.0)}
BORDER_SIDES = ("top", "bottom", "left", "right")


def normalise_argb(color: str | None) -> str | None:
    if not color:
        return None
    color = color.upper().lstrip("#")
    if len(color) == 6:
        return "FF" + color
    return color


def _rgb(color) -> str | None:
    if color is None or getattr(color, "type", None) != "rgb":
        return None
    value = color.rgb
    return normalise_argb(value) if isinstance(value, str) else None


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _read_font(cell) -> FontSpec | None:
    font = cell.font
    if font is None:
        return None
    bold = bool(font.b)
    italic = bool(font.i)
    color = _rgb(font.color)
    size = float(font.sz) if font.sz is not None else None
    if not bold and not italic and color is None and (font.name, size) in DEFAULT_FONTS:
        return None
    return FontSpec(bold=bold, italic=italic, size=size, color=color, name=font.name)


def _read_fill(cell) -> str | None:
    fill = cell.fill
    if fill is None or getattr(fill, "fill_type", None) != "solid":
        return None
    return _rgb(fill.fgColor)


def _read_alignment(cell) -> AlignmentSpec | None:
    alignment = cell.alignment
    if alignment is None:
        return None
    if not (alignment.horizontal or alignment.vertical or alignment.wrap_text):
        return None
    return AlignmentSpec(
        horizontal=alignment.horizontal,
        vertical=alignment.vertical,
        wrap_text=bool(alignment.wrap_text),
    )


def _read_border(cell) -> BorderSpec | None:
    border = cell.border
    if border is None:
        return None
    sides = {}
    for name in BORDER_SIDES:
        side = getattr(border, name)
        if side is not None and side.style:
            sides[name] = BorderSide(style=side.style, color=_rgb(side.color) or DEFAULT_BORDER_COLOR)
    return BorderSpec(**sides) if sides else None


def _read_value(cell) -> tuple[Any, str | None]:
    """Return (value, formula); formula cells carry no cached value."""
    value = cell.value
    if isinstance(value, ArrayFormula):
        text = value.text or ""
        return None, text if text.startswith("=") else "=" + text
    if cell.data_type == "f" and isinstance(value, str):
        return None, value if value.startswith("=") else "=" + value
    return value, None


def _read_cell(cell) -> CellFormat:
    value, formula = _read_value(cell)
    number_format = cell.number_format
    return CellFormat(
        value=value,
        formula=formula,
        font=_read_font(cell),
        fill=_read_fill(cell),
        alignment=_read_alignment(cell),
        border=_read_border(cell),
        number_format=None if number_format in (None, "General") else number_format,
    )


def _column_widths(ws) -> dict[int, float]:
    widths: dict[int, float] = {}
    for key, dim in ws.column_dimensions.items():
        if dim.width is None:
            continue
        first = dim.min or column_index_from_string(key)
        last = dim.max or first
        # Open-ended ranges (max=16384) only matter up to the used extent.
        last = min(last, max(ws.max_column, first))
        for index in range(first, last + 1):
            widths[index] = float(dim.width)
    return widths


def _parse_sheet(ws) -> SheetStructure:
    max_row = ws.max_row
    max_col = ws.max_column
    widths = _column_widths(ws)

    columns = [ColumnSpec(width=widths.get(c)) for c in range(1, max_col + 1)]
    rows = []
    for r in range(1, max_row + 1):
        dim = ws.row_dimensions.get(r)
        height = float(dim.height) if dim is not None and dim.height is not None else None
        cells = {}
        for c in range(1, max_col + 1):
            cell = ws.cell(row=r, column=c)
            cells[cell.coordinate] = _read_cell(cell)
        rows.append(RowSpec(height=height, cells=cells))

    merged = [str(rng) for rng in ws.merged_cells.ranges]
    return SheetStructure(name=ws.title, columns=columns, rows=rows, merged_cells=merged)


def build_metadata(structures: list[SheetStructure]) -> FormatMetadata:
    palette: list[str] = []
    has_formulas = False
    has_formatting = False
    for sheet in structures:
        for row in sheet.rows:
            for cell in row.cells.values():
                if cell.formula:
                    has_formulas = True
                if cell.is_formatted:
                    has_formatting = True
                if cell.fill and cell.fill not in palette:
                    palette.append(cell.fill)
    return FormatMetadata(
        sheets=[s.name for s in structures],
        total_rows=sum(len(s.rows) for s in structures),
        has_formulas=has_formulas,
        has_formatting=has_formatting,
        has_merged_cells=any(s.merged_cells for s in structures),
        color_palette=palette,
    )


def load_workbook_bytes(content: bytes):
    if not content:
        raise MalformedWorkbookError("Workbook is empty")
    try:
        return openpyxl.load_workbook(BytesIO(content), data_only=False)
    except (BadZipFile, InvalidFileException, KeyError, ValueError, OSError) as exc:
        raise MalformedWorkbookError(f"Could not read workbook: {exc}") from exc


def parse_workbook(content: bytes) -> tuple[list[SheetStructure], FormatMetadata]:
    wb = load_workbook_bytes(content)
    try:
        structures = [_parse_sheet(ws) for ws in wb.worksheets]
    finally:
        wb.close()
    metadata = build_metadata(structures)
    logger.debug("Parsed workbook: %d sheet(s), %d row(s)", len(structures), metadata.total_rows)
    return structures, metadata


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

def _font(spec: FontSpec) -> Font:
    return Font(
        name=spec.name,
        size=spec.size,
        bold=spec.bold,
        italic=spec.italic,
        color=normalise_argb(spec.color),
    )


def _fill(color: str) -> PatternFill:
    argb = normalise_argb(color)
    return PatternFill(fill_type="solid", start_color=argb, end_color=argb)


def _alignment(spec: AlignmentSpec) -> Alignment:
    return Alignment(
        horizontal=spec.horizontal,
        vertical=spec.vertical,
        wrap_text=spec.wrap_text or None,
    )


def _border(spec: BorderSpec) -> Border:
    sides = {}
    for name in BORDER_SIDES:
        side = getattr(spec, name)
        if side is not None:
            sides[name] = Side(style=side.style, color=normalise_argb(side.color))
    return Border(**sides)


def _write_cell(ws, coordinate: str, fmt: CellFormat, substitutions: dict[str, Any]) -> None:
    cell = ws[coordinate]
    if isinstance(cell, MergedCell):
        return

    if fmt.formula:
        cell.value = fmt.formula
    else:
        value = fmt.value
        key = fmt.marker
        if key is not None and key in substitutions:
            value = substitutions[key]
        cell.value = value
        # Plain text that happens to start with "=" must not become a formula.
        if isinstance(value, str) and value.startswith("="):
            cell.data_type = "s"

    if fmt.font:
        cell.font = _font(fmt.font)
    if fmt.fill:
        cell.fill = _fill(fmt.fill)
    if fmt.alignment:
        cell.alignment = _alignment(fmt.alignment)
    if fmt.border:
        cell.border = _border(fmt.border)
    if fmt.number_format:
        cell.number_format = fmt.number_format


def _merged_followers(merged_cells: list[str]) -> set[str]:
    """Coordinates covered by a merge other than its top-left anchor."""
    covered = set()
    for ref in merged_cells:
        rng = CellRange(ref)
        for row, col in rng.cells:
            if (row, col) != (rng.min_row, rng.min_col):
                covered.add(f"{get_column_letter(col)}{row}")
    return covered


def _write_sheet(ws, sheet: SheetStructure, substitutions: dict[str, Any]) -> None:
    for index, column in enumerate(sheet.columns, start=1):
        if column.width is not None:
            ws.column_dimensions[get_column_letter(index)].width = column.width

    followers = _merged_followers(sheet.merged_cells)
    for index, row in enumerate(sheet.rows, start=1):
        if row.height is not None:
            ws.row_dimensions[index].height = row.height
        for coordinate, fmt in row.cells.items():
            if coordinate in followers:
                continue
            _write_cell(ws, coordinate, fmt, substitutions)

    for ref in sheet.merged_cells:
        ws.merge_cells(ref)


def generate_workbook(structures: list[SheetStructure], substitutions: dict[str, Any] | None = None) -> bytes:
    if not structures:
        raise ValueError("At least one sheet is required to generate a workbook")
    substitutions = substitutions or {}

    wb = openpyxl.Workbook()
    wb.remove(wb.active)
    for sheet in structures:
        ws = wb.create_sheet(title=sheet.name)
        _write_sheet(ws, sheet, substitutions)

    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()
