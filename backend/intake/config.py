from pathlib import Path
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    data_path: Path = Path.home() / "FreightIntake"
    # Cap upload sizes; costing sheets and scanned invoices stay well below this.
    max_upload_bytes: int = 25 * 1024 * 1024  # 25 MiB
    api_prefix: str = "/api/v1"
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"

    # Duplicate detection defaults, used until a settings row is saved.
    duplicate_detection_enabled: bool = True
    filename_similarity_threshold: float = 0.85
    auto_block_exact_duplicates: bool = False
    check_invoice_numbers: bool = True
    duplicate_check_days: int = 90

    default_destination_folder: str = "/new_shipping_documents/"

    @property
    def db_path(self) -> Path:
        return self.data_path / "db.sqlite"

    @property
    def blobs_dir(self) -> Path:
        return self.data_path / "blobs"

    model_config = {"env_prefix": "INTAKE_"}


settings = Settings()
