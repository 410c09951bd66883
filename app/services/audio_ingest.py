"""Audio upload validation and storage."""

import logging
import os
import uuid
from dataclasses import dataclass
from pathlib import Path

from fastapi import UploadFile

from app.config import get_settings

logger = logging.getLogger("vocalog")

ALLOWED_EXTENSIONS = {".mp3", ".wav", ".webm", ".mp4", ".m4a", ".aac", ".ogg", ".opus", ".flac"}
ALLOWED_MIME_TYPES = {
    "audio/mpeg",
    "audio/mp3",
    "audio/wav",
    "audio/wave",
    "audio/x-wav",
    "audio/webm",
    "audio/mp4",
    "audio/m4a",
    "audio/x-m4a",
    "audio/aac",
    "audio/ogg",
    "audio/opus",
    "audio/flac",
    "audio/x-flac",
    "video/mp4",  # phone voice memos are often shared as mp4
    "video/webm",  # browser MediaRecorder output
}
CHUNK_SIZE = 1024 * 64


class AudioValidationError(ValueError):
    """Upload rejected before any record was created."""


@dataclass
class StoredAudio:
    """An accepted upload on disk."""

    stored_filename: str
    path: Path
    size: int


def user_upload_dir(user_id: int) -> Path:
    return Path(get_settings().UPLOAD_DIR) / str(user_id)


def stored_file_path(user_id: int, stored_filename: str) -> Path:
    return user_upload_dir(user_id) / stored_filename


def validate_upload_metadata(filename: str | None, content_type: str | None) -> str | None:
    """Validate upload file metadata (extension or MIME). Returns error message or None if valid.

    A file passes when either its extension or its declared content type looks
    like audio. Browser recordings arrive as ``blob`` with no extension, and some
    clients send real audio files as ``application/octet-stream``. The bytes are
    not decoded.
    """
    if not filename:
        return "No audio file provided"

    ext = Path(filename).suffix.lower()
    if ext in ALLOWED_EXTENSIONS:
        return None

    # Relaxed: some browsers send non-standard audio/* subtypes
    if content_type and (content_type in ALLOWED_MIME_TYPES or content_type.startswith("audio/")):
        return None

    return f"Unsupported file type '{ext or content_type}'. Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}"


async def store_file(user_id: int, upload: UploadFile) -> StoredAudio:
    """Stream uploaded file to disk with size limit.

    Raises AudioValidationError if the file is empty or exceeds max upload size;
    nothing is left on disk in that case.
    """
    settings = get_settings()
    max_bytes = settings.max_upload_bytes
    if upload.size is not None and upload.size > max_bytes:
        raise AudioValidationError(f"File size too large. Maximum {settings.MAX_UPLOAD_SIZE_MB}MB allowed.")

    ext = Path(upload.filename or "").suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        ext = ""
    stored_filename = f"audio-{uuid.uuid4().hex}{ext}"
    user_dir = user_upload_dir(user_id)
    user_dir.mkdir(parents=True, exist_ok=True)

    file_path = user_dir / stored_filename
    file_size = 0

    try:
        with open(file_path, "wb") as f:
            while True:
                chunk = await upload.read(CHUNK_SIZE)
                if not chunk:
                    break
                file_size += len(chunk)
                if file_size > max_bytes:
                    raise AudioValidationError(
                        f"File size too large. Maximum {settings.MAX_UPLOAD_SIZE_MB}MB allowed."
                    )
                f.write(chunk)
        if file_size == 0:
            raise AudioValidationError("Uploaded audio file is empty")
    except AudioValidationError:
        if file_path.exists():
            os.remove(file_path)
        raise

    return StoredAudio(stored_filename=stored_filename, path=file_path, size=file_size)


def estimate_duration(size_bytes: int) -> float:
    """Rough duration guess (1 MB is about a minute), replaced by the provider's figure later."""
    size_mb = size_bytes / (1024 * 1024)
    return float(max(1, round(size_mb * 60)))


def cleanup_file(file_path: str | Path) -> bool:
    """Delete a stored file. Returns True if a file was removed; failures are logged, not raised."""
    path = Path(file_path)
    try:
        if path.exists():
            os.remove(path)
            logger.info("Cleaned up file: %s", path)
            return True
    except OSError:
        logger.exception("Error cleaning up file %s", path)
    return False
