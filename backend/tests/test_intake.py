import pytest

from intake.config import settings
from intake.exceptions import DuplicateBlockedError, IntakeRejectedError, MalformedWorkbookError
from intake.models import AuditEvent, Document, ExtractionRecord, FileCosting
from intake.schemas.settings import DuplicateDetectionSettings
from intake.services import intake_service, workflow_service
from intake.services.duplicate_service import save_detection_settings
from intake.services.intake_service import IntakeContext, session_reference, versioned_filename


def _blobs(store):
    return [p for p in store.root.rglob("*") if p.is_file()] if store.root.exists() else []


class TestCostingSheetIntake:
    def test_lot_100_with_matching_shipment(self, db, store, costing_sheet, make_shipment):
        shipment = make_shipment("100", "ACME CO", "Beta Ltd")
        result = intake_service.intake(
            db, costing_sheet, "LOT_100_FILE_COSTING.xlsx", None,
            IntakeContext(uploaded_by="ops-1", session_token="tok"), store=store,
        )
        doc = result.document

        assert result.matched_shipment_id == shipment.id
        assert result.needs_review is False
        assert result.duplicates == []
        assert doc.classification == "file_costing"
        assert doc.workflow_status == "pending_review"
        assert doc.destination_folder == "/shipments/100/costings/"
        assert doc.extracted_data["lot_number"] == "100"
        assert doc.extracted_data["supplier_name"] == "ACME CO"
        assert doc.extracted_data["client_name"] == "Beta Ltd"
        assert doc.extracted_data["fob_amount"] == 5000
        assert doc.extracted_data["roe_ours"] == 18.5
        assert doc.format_metadata["has_formulas"] is True
        assert store.get(doc.storage_path) == costing_sheet

        extraction = db.query(ExtractionRecord).filter(ExtractionRecord.document_id == doc.id).one()
        assert extraction.confidence == 0.95
        assert extraction.matched_shipment_id == shipment.id

        costing = db.query(FileCosting).one()
        assert result.file_costing_id == costing.id
        assert costing.status == "draft"
        assert costing.other_documents == [doc.id]
        assert costing.grand_total_zar == pytest.approx(92500.0)

    def test_lot_100_without_shipment_needs_review(self, db, store, costing_sheet):
        result = intake_service.intake(
            db, costing_sheet, "LOT_100_FILE_COSTING.xlsx", None,
            IntakeContext(uploaded_by="ops-1"), store=store,
        )
        assert result.needs_review is True
        assert result.matched_shipment_id is None
        assert result.file_costing_id is None
        assert result.document.needs_review is True
        assert result.document.workflow_status == "pending_review"

    def test_corrupt_workbook_stores_nothing(self, db, store):
        with pytest.raises(MalformedWorkbookError):
            intake_service.intake(db, b"not a workbook", "LOT_5_FILE_COSTING.xlsx", None,
                                  IntakeContext(uploaded_by="ops-1"), store=store)
        assert db.query(Document).count() == 0
        assert _blobs(store) == []


class TestIntakeRules:
    def test_empty_file_rejected(self, db, store):
        with pytest.raises(IntakeRejectedError) as exc_info:
            intake_service.intake(db, b"", "a.pdf", None, IntakeContext(uploaded_by="ops-1"), store=store)
        assert exc_info.value.status_code == 400

    def test_oversize_rejected(self, db, store, monkeypatch):
        monkeypatch.setattr(settings, "max_upload_bytes", 4)
        with pytest.raises(IntakeRejectedError) as exc_info:
            intake_service.intake(db, b"12345", "a.pdf", None, IntakeContext(uploaded_by="ops-1"), store=store)
        assert exc_info.value.status_code == 413

    def test_duplicates_are_advisory(self, db, store):
        ctx = IntakeContext(uploaded_by="ops-1")
        first = intake_service.intake(db, b"%PDF telex", "telex_lot9.pdf", "application/pdf", ctx, store=store)
        second = intake_service.intake(db, b"%PDF telex", "telex_lot9_copy.pdf", "application/pdf", ctx,
                                       store=store)

        assert second.duplicates[0].document_id == first.document.id
        assert second.duplicates[0].confidence == 1.0
        assert second.needs_review is True
        assert db.query(Document).count() == 2

    def test_auto_block_exact_duplicate(self, db, store):
        save_detection_settings(db, DuplicateDetectionSettings(auto_block_exact_duplicates=True))
        ctx = IntakeContext(uploaded_by="ops-1")
        intake_service.intake(db, b"%PDF telex", "telex_lot9.pdf", "application/pdf", ctx, store=store)

        with pytest.raises(DuplicateBlockedError) as exc_info:
            intake_service.intake(db, b"%PDF telex", "scan.pdf", "application/pdf", ctx, store=store)
        assert exc_info.value.status_code == 409
        assert exc_info.value.matches[0].match_type == "content_hash"
        assert db.query(Document).count() == 1
        assert len(_blobs(store)) == 1

    def test_caller_fields_fill_gaps(self, db, store):
        ctx = IntakeContext(
            uploaded_by="ops-1",
            document_type="supplier_invoice",
            extracted_fields={"supplier_name": "ACME CO", "invoice_number": "INV-1", "vessel": "MSC Anna"},
        )
        result = intake_service.intake(db, b"%PDF inv", "scan_01.pdf", "application/pdf", ctx, store=store)
        doc = result.document
        assert doc.classification == "supplier_invoice"
        assert doc.extracted_data["invoice_number"] == "INV-1"
        assert doc.extracted_data["vessel"] == "MSC Anna"
        assert doc.destination_folder == "/statements/ACME CO/"

    def test_caller_field_of_wrong_type_is_rejected(self, db, store, costing_sheet):
        ctx = IntakeContext(uploaded_by="ops-1", extracted_fields={"bank_charges": "n/a"})
        with pytest.raises(IntakeRejectedError) as exc_info:
            intake_service.intake(db, costing_sheet, "LOT_100_FILE_COSTING.xlsx", None, ctx, store=store)
        assert exc_info.value.status_code == 400
        assert "bank_charges" in exc_info.value.reason
        assert db.query(Document).count() == 0
        assert _blobs(store) == []

    def test_explicit_folder_and_channel(self, db, store):
        ctx = IntakeContext(uploaded_by="whatsapp:+27820000000", channel="whatsapp", folder="/inbox/")
        result = intake_service.intake(db, b"%PDF x", "bol_7.pdf", "application/pdf", ctx, store=store)
        assert result.document.folder_path == "/inbox/"
        assert result.document.upload_channel == "whatsapp"
        assert result.document.storage_path.startswith("uploads/inbox/")

    def test_session_token_is_not_stored(self, db, store):
        ctx = IntakeContext(uploaded_by="ops-1", session_token="secret-session")
        result = intake_service.intake(db, b"%PDF x", "bol_7.pdf", None, ctx, store=store)
        event = db.query(AuditEvent).filter(AuditEvent.entity_id == result.document.id).one()
        assert event.event_type == "document_uploaded"
        assert event.event_metadata["session"] == session_reference("secret-session")
        assert "secret-session" not in str(event.event_metadata)


class TestCompensation:
    @pytest.fixture
    def failing_document_commit(self, db, monkeypatch):
        """Let advisory commits through but fail the one that inserts the document."""
        real_commit = db.commit

        def commit():
            if any(isinstance(obj, Document) for obj in db.new):
                raise RuntimeError("database unavailable")
            real_commit()

        monkeypatch.setattr(db, "commit", commit)

    def test_failed_commit_removes_blob(self, db, store, failing_document_commit):
        with pytest.raises(RuntimeError, match="database unavailable"):
            intake_service.intake(db, b"%PDF x", "bol_7.pdf", None, IntakeContext(uploaded_by="ops-1"),
                                  store=store)
        assert _blobs(store) == []
        assert db.query(Document).count() == 0

    def test_failed_blob_delete_is_not_escalated(self, db, store, failing_document_commit, monkeypatch):
        monkeypatch.setattr(store, "delete", lambda path: False)
        with pytest.raises(RuntimeError, match="database unavailable"):
            intake_service.intake(db, b"%PDF x", "bol_7.pdf", None, IntakeContext(uploaded_by="ops-1"),
                                  store=store)
        assert db.query(Document).count() == 0


class TestVersionsAndReplacement:
    def test_new_version_moves_latest_flag(self, db, store):
        ctx = IntakeContext(uploaded_by="ops-1")
        first = intake_service.intake(db, b"%PDF v1", "invoice_2024.pdf", None, ctx, store=store)
        second = intake_service.upload_as_new_version(
            db, first.document.id, b"%PDF v2", "invoice_2024.pdf", None, ctx, store=store,
        )
        third = intake_service.upload_as_new_version(
            db, second.document.id, b"%PDF v3", "invoice_2024_v2.pdf", None, ctx, store=store,
        )

        db.refresh(first.document)
        db.refresh(second.document)
        assert second.document.file_name == "invoice_2024_v2.pdf"
        assert third.document.file_name == "invoice_2024_v3.pdf"
        assert third.document.version == 3
        assert third.document.parent_document == first.document.id
        assert [first.document.is_latest_version, second.document.is_latest_version,
                third.document.is_latest_version] == [False, False, True]
        assert second.duplicates == []

    def test_replace_pending_document_rejects_it(self, db, store):
        ctx = IntakeContext(uploaded_by="ops-1")
        old = intake_service.intake(db, b"%PDF old", "bol_7.pdf", None, ctx, store=store)
        new = intake_service.replace_document(db, old.document.id, b"%PDF new", "bol_7_fixed.pdf", None, ctx,
                                              store=store)

        old_doc = db.get(Document, old.document.id)
        assert old_doc.replaced_by == new.document.id
        assert old_doc.workflow_status == "rejected"
        assert old_doc.rejection_reason == "Replaced by bol_7_fixed.pdf"
        assert new.document.folder_path == old_doc.folder_path

        event = (
            db.query(AuditEvent)
            .filter(AuditEvent.entity_id == new.document.id, AuditEvent.event_type == "document_replaced")
            .one()
        )
        assert event.event_metadata == {"replaced_document": old_doc.id, "reason": "duplicate_replacement"}

    def test_replace_approved_document_archives_it(self, db, store):
        ctx = IntakeContext(uploaded_by="ops-1")
        old = intake_service.intake(db, b"%PDF old", "bol_7.pdf", None, ctx, store=store)
        workflow_service.approve(db, old.document.id, "manager-1")

        intake_service.replace_document(db, old.document.id, b"%PDF new", "bol_7.pdf", None, ctx, store=store)
        assert db.get(Document, old.document.id).workflow_status == "archived"


class TestHelpers:
    def test_versioned_filename(self):
        assert versioned_filename("invoice.pdf", 2) == "invoice_v2.pdf"
        assert versioned_filename("invoice_v2.pdf", 3) == "invoice_v3.pdf"
        assert versioned_filename("README", 2) == "README_v2"

    def test_session_reference(self):
        assert session_reference(None) is None
        assert len(session_reference("abc")) == 16
        assert session_reference("abc") == session_reference("abc")
