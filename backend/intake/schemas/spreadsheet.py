import re
from typing import Any

from pydantic import BaseModel, field_validator, model_validator

MARKER_PATTERN = re.compile(r"^\{(\w+)\}$")


class FontSpec(BaseModel):
    bold: bool = False
    italic: bool = False
    size: float | None = None
    color: str | None = None
    name: str | None = None


class AlignmentSpec(BaseModel):
    horizontal: str | None = None
    vertical: str | None = None
    wrap_text: bool = False


class BorderSide(BaseModel):
    style: str
    color: str = "FF000000"


class BorderSpec(BaseModel):
    top: BorderSide | None = None
    bottom: BorderSide | None = None
    left: BorderSide | None = None
    right: BorderSide | None = None


class CellFormat(BaseModel):
    value: Any = None
    formula: str | None = None
    font: FontSpec | None = None
    fill: str | None = None
    alignment: AlignmentSpec | None = None
    border: BorderSpec | None = None
    number_format: str | None = None

    @field_validator("formula")
    @classmethod
    def _leading_equals(cls, v: str | None) -> str | None:
        if v is None or v.startswith("="):
            return v
        return "=" + v

    @model_validator(mode="after")
    def _formula_without_marker(self):
        if self.formula and isinstance(self.value, str) and MARKER_PATTERN.match(self.value):
            raise ValueError("A formula cell cannot also carry a substitution marker")
        return self

    @property
    def marker(self) -> str | None:
        if isinstance(self.value, str):
            m = MARKER_PATTERN.match(self.value)
            if m:
                return m.group(1)
        return None

    @property
    def is_formatted(self) -> bool:
        return any((self.font, self.fill, self.alignment, self.border, self.number_format))


class ColumnSpec(BaseModel):
    width: float | None = None
    key: str | None = None


class RowSpec(BaseModel):
    height: float | None = None
    cells: dict[str, CellFormat] = {}


class SheetStructure(BaseModel):
    name: str
    columns: list[ColumnSpec] = []
    rows: list[RowSpec] = []
    merged_cells: list[str] = []

    @field_validator("merged_cells")
    @classmethod
    def _sorted_ranges(cls, v: list[str]) -> list[str]:
        # xlsx keeps merges as an unordered set, so ranges are held sorted.
        return sorted(v)


class FormatMetadata(BaseModel):
    sheets: list[str]
    total_rows: int
    has_formulas: bool
    has_formatting: bool
    has_merged_cells: bool
    color_palette: list[str]


class ParsedWorkbookResponse(BaseModel):
    structures: list[SheetStructure]
    metadata: FormatMetadata
    fields: dict | None = None


class GenerateWorkbookRequest(BaseModel):
    structures: list[SheetStructure]
    substitutions: dict[str, Any] | None = None
    filename: str = "workbook.xlsx"
