import pytest

from intake.schemas.file_costing import FileCostingData
from intake.services.costing_extractor import (
    CoordinateLocator,
    LabelScanLocator,
    SheetView,
    extract_costing_fields,
    extract_from_workbook,
    is_costing_header,
    parse_amount,
)
from intake.services.costing_template import (
    build_costing_structure,
    costing_filename,
    costing_header,
    freight_note,
    generate_costing_workbook,
)
from intake.services.spreadsheet_codec import parse_workbook


class TestParseAmount:
    def test_numbers_and_currency_text(self):
        assert parse_amount(5000) == 5000.0
        assert parse_amount("R 12,500.50") == 12500.5
        assert parse_amount("$1,200") == 1200.0

    def test_blank_is_none_not_zero(self):
        assert parse_amount(None) is None
        assert parse_amount("") is None
        assert parse_amount("  ") is None
        assert parse_amount("TBC") is None


class TestCostingSheetExtraction:
    def test_lot_header_and_fixed_cells(self, costing_sheet):
        fields = extract_from_workbook(costing_sheet)
        assert fields.document_type == "file_costing"
        assert fields.lot_number == "100"
        assert fields.supplier_name == "ACME CO"
        assert fields.client_name == "Beta Ltd"
        assert fields.fob_amount == 5000
        assert fields.roe_ours == 18.5
        assert fields.commodity == "General Cargo"
        assert fields.container_type == "40HQ"

    def test_totals_are_computed_not_read(self, costing_sheet):
        fields = extract_from_workbook(costing_sheet)
        # B7 is a formula with no cached value; the FOB amount stands in for it.
        assert fields.fob_total_usd == 5000
        assert fields.fob_total_zar == pytest.approx(92500.0)
        assert fields.total_cost_zar == pytest.approx(92500.0)

    def test_blank_fob_stays_null(self, make_xlsx):
        content = make_xlsx({
            "A1": "LOT 7 - ACME CO - DOC Beta Ltd",
            "B9": 18.5,
            "B16": 1000,
            "B20": "R 250",
            "A23": "TRANSPORT",
            "B23": 3000,
        })
        fields = extract_from_workbook(content)
        assert fields.fob_amount is None
        assert fields.fob_total_zar is None
        assert fields.clearing_total == 1250.0
        assert fields.total_cost_zar == 4250.0
        assert "fob_amount" not in fields.known()

    def test_label_scan_finds_moved_rows(self, make_xlsx):
        content = make_xlsx({
            "A1": "LOT 12 - KELLY TRADING - CARGO CO",
            "A40": "Kellilah freight",
            "B40": 45000,
            "C40": "$2500@18",
            "A41": "Barakuda transport",
            "B41": 8000,
            "A42": "SRS handling",
            "B42": 1500,
            "A43": "Additional clearing",
            "B43": 999,
            "A44": "Bank charges",
            "B44": 350,
            "A45": "FX commission",
            "B45": 120,
        })
        fields = extract_from_workbook(content)
        assert fields.lot_number == "12"
        assert fields.client_name == "CARGO CO"
        assert fields.shipping_cost == 45000
        assert fields.freight_usd == 2500
        assert fields.freight_rate == 18
        assert fields.transport_cost == 8000
        assert fields.additional_costs == 1500
        assert fields.bank_charges == 350
        assert fields.fx_commission == 120
        assert fields.total_cost_zar == 45000 + 8000 + 1500 + 350 + 120

    def test_earlier_locator_wins(self, make_xlsx):
        content = make_xlsx({"A1": "LOT 1 - A - B", "A23": "TRANSPORT", "B23": 100})
        structures, _ = parse_workbook(content)

        class Override:
            def locate(self, sheet):
                return {"transport_cost": 5.0, "lot_number": None}

        fields = extract_costing_fields(structures, [Override(), CoordinateLocator(), LabelScanLocator()])
        assert fields.transport_cost == 5.0
        assert fields.lot_number == "1"

    def test_label_scan_never_raises(self, make_xlsx):
        structures, _ = parse_workbook(make_xlsx({"A1": "x"}))

        class Broken(SheetView):
            def row_count(self):
                raise RuntimeError("bad sheet")

        assert LabelScanLocator().locate(Broken(structures[0])) == {}

    def test_empty_structures(self):
        fields = extract_costing_fields([])
        assert fields.document_type == "file_costing"
        assert fields.total_cost_zar == 0.0

    def test_is_costing_header(self):
        assert is_costing_header("LOT 100 - ACME CO - DOC Beta Ltd")
        assert is_costing_header("lot 5 - a - b")
        assert not is_costing_header("Packing list")
        assert not is_costing_header(None)


class TestCostingTemplate:
    def test_generated_template_extracts_back(self):
        data = FileCostingData(
            lot_number="100",
            supplier_name="ACME CO",
            client_name="Beta Ltd",
            fob_amount=5000,
            roe_ours=18.5,
            customs_duty=1000,
            agency_fee=250,
            transport_cost=3000,
            shipping_cost=45000,
            freight_usd=2500,
            freight_rate=18,
            client_invoice=200000,
        )
        fields = extract_from_workbook(generate_costing_workbook(data))
        assert fields.lot_number == "100"
        assert fields.supplier_name == "ACME CO"
        assert fields.client_name == "Beta Ltd"
        assert fields.delivery_route == "DBN - DBN"
        assert fields.fob_amount == 5000
        assert fields.customs_duty == 1000
        assert fields.transport_cost == 3000
        assert fields.shipping_cost == 45000
        assert fields.freight_usd == 2500
        assert fields.total_cost_zar == pytest.approx(92500 + 1250 + 3000 + 45000)

    def test_template_layout(self):
        content = generate_costing_workbook(FileCostingData(lot_number="9"))
        structures, metadata = parse_workbook(content)
        sheet = structures[0]
        assert sheet.name == "FILE COSTING"
        assert sheet.merged_cells == ["A1:E1"]
        assert [c.width for c in sheet.columns] == [30.0, 15.0, 30.0, 15.0, 15.0]
        assert len(sheet.rows) == 33
        assert metadata.has_formulas is True

        cells = {}
        for row in sheet.rows:
            cells.update(row.cells)
        assert cells["B30"].formula == "=C7+B14+B23+B24+B25+B26+B27"
        assert cells["B10"].fill == "FFFFFF00"
        assert cells["B5"].value is None

    def test_structure_markers(self):
        sheet = build_costing_structure()[0]
        markers = {cell.marker for row in sheet.rows for cell in row.cells.values() if cell.marker}
        assert {"header", "fob_amount", "roe_ours", "client_invoice", "freight_note"} <= markers

    def test_naming_helpers(self):
        assert costing_header("100", "ACME CO", "Beta Ltd") == "LOT 100 - ACME CO - DOC Beta Ltd"
        assert freight_note(2500, 18.5) == "$2500@18.5"
        assert freight_note(None, 18.5) is None
        assert costing_filename("100") == "LOT_100_FILE_COSTING.xlsx"
