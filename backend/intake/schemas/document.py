from pydantic import BaseModel


class DocumentResponse(BaseModel):
    id: str
    file_name: str
    original_name: str
    storage_path: str
    mime_type: str | None
    file_size: int
    content_hash: str | None
    classification: str | None
    extracted_data: dict | None
    workflow_status: str
    requires_approval: bool
    needs_review: bool
    destination_folder: str | None
    folder_path: str | None
    shipment_id: str | None
    uploaded_by: str | None
    upload_channel: str
    version: int
    parent_document: str | None
    is_latest_version: bool
    replaced_by: str | None
    approved_by: str | None
    approved_at: str | None
    rejected_by: str | None
    rejected_at: str | None
    rejection_reason: str | None
    uploaded_at: str
    updated_at: str


class HistoryEntryResponse(BaseModel):
    seq: int
    from_status: str
    to_status: str
    by_user: str
    at: str
    action: str
    from_folder: str | None
    to_folder: str | None
    reason: str | None


class DuplicateMatchResponse(BaseModel):
    match_type: str
    confidence: float
    document_id: str
    file_name: str
    uploaded_at: str
    reason: str


class IntakeResponse(BaseModel):
    document: DocumentResponse
    duplicates: list[DuplicateMatchResponse]
    needs_review: bool
    matched_shipment_id: str | None
    file_costing_id: str | None


class DuplicateCheckResponse(BaseModel):
    content_hash: str
    duplicates: list[DuplicateMatchResponse]


class VerifyResponse(BaseModel):
    verified: bool
    file_name: str
    stored_hash: str | None
    actual_hash: str
