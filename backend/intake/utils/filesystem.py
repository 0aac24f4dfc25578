from pathlib import Path
from intake.config import settings

SAFE_CHARS = set("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789._-")


def ensure_data_dirs(data_path: Path | None = None) -> Path:
    path = data_path or settings.data_path
    path.mkdir(parents=True, exist_ok=True)
    (path / "blobs").mkdir(exist_ok=True)
    return path


def sanitize_filename(name: str) -> str:
    cleaned = "".join(c if c in SAFE_CHARS else "_" for c in name)
    return cleaned.lstrip(".") or "file"


def sanitize_folder(folder: str | None) -> str:
    """Turn a logical folder like ``/shipments/LOT 1/`` into a relative path."""
    if not folder:
        return "unfiled"
    parts = [sanitize_filename(p) for p in folder.split("/") if p.strip() and p not in (".", "..")]
    return "/".join(parts) or "unfiled"
