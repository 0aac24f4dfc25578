from io import BytesIO

import openpyxl
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from intake.config import settings
from intake.database import get_db, init_db
from intake.main import app
from intake.models import Document, Shipment
from intake.services.blob_store import BlobStore
from intake.utils.timestamps import utc_now


def _set_sqlite_pragmas(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture
def tmp_data(tmp_path):
    data_path = tmp_path / "FreightIntake"
    data_path.mkdir()
    original_data_path = settings.data_path
    settings.data_path = data_path
    yield data_path
    settings.data_path = original_data_path


@pytest.fixture
def test_db(tmp_data):
    db_path = tmp_data / "db.sqlite"
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    event.listen(engine, "connect", _set_sqlite_pragmas)
    TestSession = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    init_db(db_path)

    def override_get_db():
        db = TestSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestSession
    app.dependency_overrides.clear()
    engine.dispose()


@pytest.fixture
def db(test_db):
    session = test_db()
    yield session
    session.close()


@pytest.fixture
def store(tmp_data):
    return BlobStore(tmp_data / "blobs")


@pytest.fixture
def client(tmp_data, test_db):
    return TestClient(app)


@pytest.fixture
def auth():
    return {"X-User-Id": "ops-1", "Authorization": "Bearer session-abc"}


@pytest.fixture
def make_shipment(db):
    def _make(lot_number, supplier_name=None, client_name=None):
        shipment = Shipment(
            id=f"ship-{lot_number}",
            lot_number=lot_number,
            supplier_name=supplier_name,
            client_name=client_name,
            status="in_transit",
            created_at=utc_now(),
        )
        db.add(shipment)
        db.commit()
        return shipment
    return _make


@pytest.fixture
def make_xlsx():
    """Build a one-sheet workbook from literal cell values."""
    def _make(cells, title="Sheet1"):
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = title
        for coordinate, value in cells.items():
            ws[coordinate] = value
        buffer = BytesIO()
        wb.save(buffer)
        return buffer.getvalue()
    return _make


@pytest.fixture
def costing_sheet(make_xlsx):
    return make_xlsx({
        "A1": "LOT 100 - ACME CO - DOC Beta Ltd",
        "A2": "General Cargo",
        "B2": "40HQ",
        "A5": "FOB",
        "B5": 5000,
        "B7": "=SUM(B5:B6)",
        "A9": "ROE - OURS",
        "B9": 18.5,
    })


@pytest.fixture
def make_document(db):
    """Insert a document row directly, bypassing intake."""
    counter = iter(range(1, 10_000))

    def _make(file_name="invoice_001.pdf", status="draft", uploaded_at=None, **fields):
        n = next(counter)
        now = utc_now()
        doc = Document(
            id=fields.pop("id", f"doc-{n}"),
            file_name=file_name,
            original_name=file_name,
            storage_path=f"uploads/test/{n}_{file_name}",
            mime_type="application/pdf",
            file_size=10,
            content_hash=fields.pop("content_hash", f"hash-{n}"),
            classification=fields.pop("classification", "invoice"),
            extracted_data=fields.pop("extracted_data", {}),
            workflow_status=status,
            requires_approval=status == "pending_review",
            needs_review=False,
            folder_path=fields.pop("folder_path", "/new_shipping_documents/"),
            uploaded_by=fields.pop("uploaded_by", "ops-1"),
            upload_channel="upload",
            version=1,
            is_latest_version=True,
            uploaded_at=uploaded_at or now,
            updated_at=now,
            **fields,
        )
        db.add(doc)
        db.commit()
        return doc
    return _make
