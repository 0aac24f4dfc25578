import logging
import os
import time
import uuid
from pathlib import Path

from intake.config import settings
from intake.utils.filesystem import sanitize_filename, sanitize_folder

logger = logging.getLogger(__name__)


class BlobStore:
    """File bytes on local disk, addressed by a generated relative path."""

    def __init__(self, root: Path):
        self.root = root

    def path_for(self, storage_path: str) -> Path:
        full = (self.root / storage_path).resolve()
        if not full.is_relative_to(self.root.resolve()):
            raise ValueError(f"Storage path escapes the blob root: {storage_path}")
        return full

    def put(self, folder: str | None, filename: str, content: bytes) -> str:
        """Store bytes immutably and return the storage path."""
        stored_name = f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}_{sanitize_filename(filename)}"
        storage_path = f"uploads/{sanitize_folder(folder)}/{stored_name}"
        full = self.path_for(storage_path)
        full.parent.mkdir(parents=True, exist_ok=True)
        full.write_bytes(content)
        os.chmod(full, 0o444)
        return storage_path

    def get(self, storage_path: str) -> bytes:
        return self.path_for(storage_path).read_bytes()

    def exists(self, storage_path: str) -> bool:
        return self.path_for(storage_path).exists()

    def delete(self, storage_path: str) -> bool:
        """Best-effort removal, used to compensate a failed row insert."""
        try:
            full = self.path_for(storage_path)
            os.chmod(full, 0o644)
            full.unlink()
        except (OSError, ValueError):
            logger.warning("Could not delete orphaned blob %s", storage_path, exc_info=True)
            return False
        logger.info("Deleted orphaned blob %s", storage_path)
        return True


def get_blob_store() -> BlobStore:
    return BlobStore(settings.blobs_dir)
