from intake.models import DuplicateCheck
from intake.schemas.extraction import ExtractedFields
from intake.schemas.settings import DuplicateDetectionSettings
from intake.services import duplicate_service
from intake.services.duplicate_service import (
    CONTENT_HASH,
    EXACT_FILENAME,
    FIELD_TUPLE,
    FUZZY_FILENAME,
    INVOICE_NUMBER,
    find_duplicates,
    load_detection_settings,
    save_detection_settings,
)
from intake.utils.fingerprint import content_digest
from intake.utils.timestamps import days_ago


class TestFindDuplicates:
    def test_identical_bytes_match_regardless_of_name(self, db, make_document):
        content = b"%PDF-1.4 telex release"
        existing = make_document("telex_LOT100.pdf", content_hash=content_digest(content))

        matches = find_duplicates(db, "scan_0042.pdf", content)
        assert len(matches) == 1
        assert matches[0].match_type == CONTENT_HASH
        assert matches[0].confidence == 1.0
        assert matches[0].document_id == existing.id
        assert matches[0].reason == "Identical file contents (100% match)"

    def test_exact_filename(self, db, make_document):
        make_document("Invoice_001.pdf")
        matches = find_duplicates(db, "invoice_001.pdf", b"different bytes")
        assert [m.match_type for m in matches] == [EXACT_FILENAME]
        assert matches[0].reason == "Identical filename"

    def test_fuzzy_filename_boundary(self, db, make_document):
        make_document("invoice_jan.pdf")
        assert find_duplicates(db, "invoice_feb.pdf", b"x") == []

        make_document("invoice_2024.pdf")
        matches = find_duplicates(db, "invoice_2024_v2.pdf", b"y")
        assert len(matches) == 1
        assert matches[0].match_type == FUZZY_FILENAME
        assert matches[0].reason == "100% filename similarity"

    def test_invoice_number(self, db, make_document):
        make_document("a.pdf", extracted_data={"invoice_number": "INV-77"})
        matches = find_duplicates(db, "b.pdf", b"z", ExtractedFields(invoice_number="INV-77"))
        assert matches[0].match_type == INVOICE_NUMBER
        assert matches[0].confidence == 0.95
        assert matches[0].reason == "Same invoice number: INV-77"

    def test_invoice_number_check_can_be_disabled(self, db, make_document):
        make_document("a.pdf", extracted_data={"invoice_number": "INV-77"})
        detection = DuplicateDetectionSettings(check_invoice_numbers=False)
        matches = find_duplicates(db, "b.pdf", b"z", ExtractedFields(invoice_number="INV-77"), detection)
        assert matches == []

    def test_amount_date_supplier_tuple(self, db, make_document):
        make_document("a.pdf", extracted_data={
            "total_amount": 1250.0, "invoice_date": "2024-03-01", "supplier_name": "ACME CO",
        })
        fields = ExtractedFields(total_amount=1250, invoice_date="2024-03-01", supplier_name="ACME CO")
        matches = find_duplicates(db, "b.pdf", b"z", fields)
        assert matches[0].match_type == FIELD_TUPLE
        assert matches[0].confidence == 0.90

    def test_invoice_number_must_match_exactly(self, db, make_document):
        make_document("a.pdf", extracted_data={"invoice_number": "inv-001 "})
        assert find_duplicates(db, "b.pdf", b"z", ExtractedFields(invoice_number="INV-001")) == []

    def test_tuple_fields_must_match_exactly(self, db, make_document):
        make_document("a.pdf", extracted_data={
            "total_amount": 1250.0, "invoice_date": "2024-03-01", "supplier_name": "ACME CO",
        })
        other_case = ExtractedFields(total_amount=1250, invoice_date="2024-03-01", supplier_name="acme co")
        off_by_cent = ExtractedFields(total_amount=1250.01, invoice_date="2024-03-01", supplier_name="ACME CO")
        assert find_duplicates(db, "b.pdf", b"z", other_case) == []
        assert find_duplicates(db, "c.pdf", b"y", off_by_cent) == []

    def test_partial_tuple_does_not_match(self, db, make_document):
        make_document("a.pdf", extracted_data={"total_amount": 1250.0, "supplier_name": "ACME CO"})
        fields = ExtractedFields(total_amount=1250, supplier_name="ACME CO")
        assert find_duplicates(db, "b.pdf", b"z", fields) == []

    def test_one_match_per_document_with_highest_confidence(self, db, make_document):
        content = b"same bytes"
        make_document("lot100_bol.pdf", content_hash=content_digest(content),
                      extracted_data={"invoice_number": "A1"})
        make_document("other.pdf", extracted_data={"invoice_number": "A1"})

        matches = find_duplicates(db, "lot100_bol.pdf", content, ExtractedFields(invoice_number="A1"))
        assert len(matches) == 2
        assert matches[0].confidence == 1.0
        assert matches[1].match_type == INVOICE_NUMBER
        assert [m.confidence for m in matches] == sorted((m.confidence for m in matches), reverse=True)

    def test_lookback_window(self, db, make_document):
        make_document("invoice_001.pdf", uploaded_at=days_ago(120))
        assert find_duplicates(db, "invoice_001.pdf", b"x") == []

        unbounded = DuplicateDetectionSettings(duplicate_check_days=0)
        assert len(find_duplicates(db, "invoice_001.pdf", b"x", detection=unbounded)) == 1

    def test_disabled_returns_nothing(self, db, make_document):
        make_document("invoice_001.pdf")
        detection = DuplicateDetectionSettings(duplicate_detection_enabled=False)
        assert find_duplicates(db, "invoice_001.pdf", b"x", detection=detection) == []

    def test_lookup_failure_is_swallowed(self, db, make_document, monkeypatch):
        make_document("invoice_001.pdf")

        def boom(*args, **kwargs):
            raise RuntimeError("store unavailable")

        monkeypatch.setattr(duplicate_service, "match_candidates", boom)
        assert find_duplicates(db, "invoice_001.pdf", b"x") == []

    def test_check_is_logged(self, db, make_document):
        existing = make_document("invoice_001.pdf")
        find_duplicates(db, "invoice_001.pdf", b"x", checked_by="ops-2")

        check = db.query(DuplicateCheck).one()
        assert check.match_count == 1
        assert check.best_match_id == existing.id
        assert check.checked_by == "ops-2"


class TestDetectionSettings:
    def test_defaults_until_saved(self, db):
        detection = load_detection_settings(db)
        assert detection.filename_similarity_threshold == 0.85
        assert detection.duplicate_check_days == 90

    def test_save_and_reload(self, db):
        saved = save_detection_settings(db, DuplicateDetectionSettings(
            filename_similarity_threshold=0.9, auto_block_exact_duplicates=True,
        ))
        assert saved.auto_block_exact_duplicates is True
        assert load_detection_settings(db).filename_similarity_threshold == 0.9

    def test_threshold_of_one_disables_fuzzy(self, db, make_document):
        make_document("invoice_2024.pdf")
        detection = DuplicateDetectionSettings(filename_similarity_threshold=1.0)
        assert find_duplicates(db, "invoice_2024_v2.pdf", b"x", detection=detection) == []
