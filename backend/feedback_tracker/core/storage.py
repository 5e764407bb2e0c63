import logging
import uuid
from pathlib import Path
from typing import Optional

from fastapi import HTTPException

from feedback_tracker.core.config import get_settings

logger = logging.getLogger(__name__)

UPLOADS_URL_PREFIX = "/uploads"


def _file_extension(filename: Optional[str]) -> str:
    if not filename:
        return ""
    return Path(filename).suffix.lower()


def build_stored_name(filename: Optional[str]) -> str:
    return f"{uuid.uuid4().hex}{_file_extension(filename)}"


def get_upload_dir() -> Path:
    path = Path(get_settings().upload_dir)
    path.mkdir(parents=True, exist_ok=True)
    return path


def save_upload(*, filename: Optional[str], content: bytes) -> tuple[str, str]:
    """Write ``content`` under the upload dir; return the stored name and its public path."""
    settings = get_settings()
    if not content:
        raise HTTPException(400, "Empty file")
    if len(content) > settings.max_upload_bytes:
        raise HTTPException(413, "File too large")
    if _file_extension(filename) not in settings.upload_allowed_extensions:
        raise HTTPException(400, "Unsupported file type")

    name = build_stored_name(filename)
    target = get_upload_dir() / name
    try:
        target.write_bytes(content)
    except OSError as exc:
        logger.exception("Failed to store upload %s", name)
        raise HTTPException(500, "Failed to store file") from exc

    logger.info("Stored upload %s (%d bytes)", name, len(content))
    return name, f"{UPLOADS_URL_PREFIX}/{name}"
