import hashlib
from pathlib import Path

CHUNK_SIZE = 64 * 1024


def content_digest(data: bytes) -> str:
    """SHA-256 hex digest of the full byte stream."""
    return hashlib.sha256(data).hexdigest()


def file_digest(file_path: Path) -> str:
    h = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()
