from pydantic import BaseModel


class StageRequest(BaseModel):
    destination_folder: str | None = None


class ApproveRequest(BaseModel):
    destination_folder: str | None = None


class RejectRequest(BaseModel):
    reason: str


class BulkApproveRequest(BaseModel):
    document_ids: list[str]


class BulkFailure(BaseModel):
    document_id: str
    error: str


class BulkApproveResponse(BaseModel):
    approved: list[str]
    approved_count: int
    failed_count: int
    failures: list[BulkFailure]


class DestinationSuggestion(BaseModel):
    classification: str | None
    destination_folder: str
