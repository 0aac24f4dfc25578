from pydantic import BaseModel, Field


class DuplicateDetectionSettings(BaseModel):
    duplicate_detection_enabled: bool = True
    filename_similarity_threshold: float = Field(0.85, ge=0.0, le=1.0)
    auto_block_exact_duplicates: bool = False
    check_invoice_numbers: bool = True
    # 0 disables the lookback window
    duplicate_check_days: int = Field(90, ge=0)
