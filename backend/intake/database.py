import sqlite3
from pathlib import Path
from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from intake.config import settings


class Base(DeclarativeBase):
    pass


def _set_sqlite_pragmas(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_engine(db_path: Path | None = None):
    path = db_path or settings.db_path
    engine = create_engine(
        f"sqlite:///{path}",
        connect_args={"check_same_thread": False},
    )
    event.listen(engine, "connect", _set_sqlite_pragmas)
    return engine


engine = get_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


SCHEMA_SQL = """\
-- ============================================================
-- SHIPMENTS (owned by the operations console, read here)
-- ============================================================
CREATE TABLE IF NOT EXISTS shipments (
    id            TEXT PRIMARY KEY,
    lot_number    TEXT NOT NULL,
    supplier_name TEXT,
    client_name   TEXT,
    status        TEXT NOT NULL DEFAULT 'pending',
    created_at    TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now'))
);

CREATE INDEX IF NOT EXISTS idx_shipments_lot ON shipments(lot_number);

-- ============================================================
-- DOCUMENTS
-- ============================================================
CREATE TABLE IF NOT EXISTS documents (
    id                 TEXT PRIMARY KEY,
    file_name          TEXT NOT NULL,
    original_name      TEXT NOT NULL,
    storage_path       TEXT NOT NULL,
    mime_type          TEXT,
    file_size          INTEGER NOT NULL,
    content_hash       TEXT,
    classification     TEXT,
    extracted_data     TEXT,
    format_metadata    TEXT,
    workflow_status    TEXT NOT NULL DEFAULT 'draft'
                       CHECK(workflow_status IN ('draft','pending_review','approved',
                                                 'rejected','archived')),
    requires_approval  INTEGER NOT NULL DEFAULT 0,
    needs_review       INTEGER NOT NULL DEFAULT 1,
    destination_folder TEXT,
    folder_path        TEXT,
    shipment_id        TEXT REFERENCES shipments(id) ON DELETE SET NULL,
    uploaded_by        TEXT,
    upload_channel     TEXT NOT NULL DEFAULT 'upload',
    version            INTEGER NOT NULL DEFAULT 1,
    parent_document    TEXT REFERENCES documents(id) ON DELETE SET NULL,
    is_latest_version  INTEGER NOT NULL DEFAULT 1,
    replaced_by        TEXT,
    approved_by        TEXT,
    approved_at        TEXT,
    rejected_by        TEXT,
    rejected_at        TEXT,
    rejection_reason   TEXT,
    uploaded_at        TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now')),
    updated_at         TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now')),
    row_version        INTEGER NOT NULL DEFAULT 1
);

CREATE INDEX IF NOT EXISTS idx_documents_hash ON documents(content_hash);
CREATE INDEX IF NOT EXISTS idx_documents_uploaded ON documents(uploaded_at);
CREATE INDEX IF NOT EXISTS idx_documents_status ON documents(workflow_status);
CREATE INDEX IF NOT EXISTS idx_documents_parent ON documents(parent_document);
CREATE UNIQUE INDEX IF NOT EXISTS idx_documents_path ON documents(storage_path);

-- ============================================================
-- WORKFLOW HISTORY (insert-only)
-- ============================================================
CREATE TABLE IF NOT EXISTS workflow_history (
    id          TEXT PRIMARY KEY,
    document_id TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    seq         INTEGER NOT NULL,
    from_status TEXT NOT NULL,
    to_status   TEXT NOT NULL,
    by_user     TEXT NOT NULL,
    at          TEXT NOT NULL,
    action      TEXT NOT NULL,
    from_folder TEXT,
    to_folder   TEXT,
    reason      TEXT
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_history_doc_seq ON workflow_history(document_id, seq);

-- ============================================================
-- EXTRACTION RECORDS
-- ============================================================
CREATE TABLE IF NOT EXISTS extraction_records (
    id                  TEXT PRIMARY KEY,
    document_id         TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    document_type       TEXT,
    extracted_data      TEXT,
    confidence          REAL,
    matched_shipment_id TEXT,
    needs_review        INTEGER NOT NULL DEFAULT 1,
    created_at          TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now'))
);

CREATE INDEX IF NOT EXISTS idx_extractions_doc ON extraction_records(document_id);

-- ============================================================
-- FILE COSTINGS
-- ============================================================
CREATE TABLE IF NOT EXISTS file_costings (
    id                  TEXT PRIMARY KEY,
    shipment_id         TEXT REFERENCES shipments(id) ON DELETE SET NULL,
    lot_number          TEXT,
    transport_documents TEXT,
    clearing_documents  TEXT,
    other_documents     TEXT,
    transport_cost_zar  REAL NOT NULL DEFAULT 0,
    clearing_cost_zar   REAL NOT NULL DEFAULT 0,
    other_costs_zar     REAL NOT NULL DEFAULT 0,
    grand_total_zar     REAL NOT NULL DEFAULT 0,
    status              TEXT NOT NULL DEFAULT 'draft'
                        CHECK(status IN ('draft','pending_review','finalized')),
    notes               TEXT,
    created_by          TEXT,
    finalized_at        TEXT,
    finalized_by        TEXT,
    created_at          TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now')),
    updated_at          TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now'))
);

CREATE INDEX IF NOT EXISTS idx_costings_shipment ON file_costings(shipment_id);
CREATE INDEX IF NOT EXISTS idx_costings_status ON file_costings(status);

-- ============================================================
-- DUPLICATE DETECTION
-- ============================================================
CREATE TABLE IF NOT EXISTS duplicate_settings (
    id                            INTEGER PRIMARY KEY CHECK(id = 1),
    duplicate_detection_enabled   INTEGER NOT NULL DEFAULT 1,
    filename_similarity_threshold REAL NOT NULL DEFAULT 0.85,
    auto_block_exact_duplicates   INTEGER NOT NULL DEFAULT 0,
    check_invoice_numbers         INTEGER NOT NULL DEFAULT 1,
    duplicate_check_days          INTEGER NOT NULL DEFAULT 90,
    updated_at                    TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now'))
);

CREATE TABLE IF NOT EXISTS duplicate_checks (
    id              TEXT PRIMARY KEY,
    file_name       TEXT NOT NULL,
    content_hash    TEXT NOT NULL,
    match_count     INTEGER NOT NULL,
    best_match_id   TEXT,
    best_match_type TEXT,
    best_confidence REAL,
    checked_by      TEXT,
    checked_at      TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now'))
);

-- ============================================================
-- NOTIFICATIONS / AUDIT
-- ============================================================
CREATE TABLE IF NOT EXISTS notifications (
    id                TEXT PRIMARY KEY,
    user_id           TEXT NOT NULL,
    notification_type TEXT NOT NULL,
    title             TEXT NOT NULL,
    message           TEXT NOT NULL,
    severity          TEXT NOT NULL DEFAULT 'info'
                      CHECK(severity IN ('info','warning','error')),
    created_at        TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now')),
    read_at           TEXT
);

CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id);

CREATE TABLE IF NOT EXISTS audit_events (
    id          TEXT PRIMARY KEY,
    event_type  TEXT NOT NULL,
    entity_type TEXT NOT NULL,
    entity_id   TEXT NOT NULL,
    user_id     TEXT,
    metadata    TEXT,
    created_at  TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now'))
);

CREATE INDEX IF NOT EXISTS idx_audit_entity ON audit_events(entity_type, entity_id);
"""


def init_db(db_path: Path | None = None):
    path = db_path or settings.db_path
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.executescript(SCHEMA_SQL)
    conn.close()
