"""Photo service - photo rows, uploads and signed URLs.

Every storage call goes through the turn access guard first; the storage
backend itself never authorizes anything.
"""

import logging
import os
import re
import uuid
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import ValidationFailed
from app.core.structured_logging import build_log_context
from app.core.turn_access import normalize_storage_path, require_path_access, require_turn_access
from app.db.models import PHOTO_SCHEMA_VERSION, TurnPhoto
from app.schemas.auth import Actor
from app.schemas.turn import PhotoIn

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================

ALLOWED_EXTENSIONS = {"jpg", "jpeg", "png", "heic", "heif", "webp"}
ALLOWED_MIME_TYPES = {
    "image/jpeg",
    "image/png",
    "image/heic",
    "image/heif",
    "image/webp",
}
MAX_FILE_SIZE_BYTES = 15 * 1024 * 1024  # 15 MB
MIN_SIGNED_URL_SECONDS = 30
MAX_SIGNED_URL_SECONDS = 3600


# =============================================================================
# Photo rows
# =============================================================================

def _note_lang(explicit: str | None, text: str | None, fallback: str) -> str | None:
    if explicit:
        return explicit
    return fallback if text else None


def build_photo_row(turn_id: UUID, photo: PhotoIn, *, is_fix: bool) -> TurnPhoto:
    """
    Map one incoming photo onto the current TurnPhoto shape.

    Raises:
        ValidationFailed: unusable storage path
    """
    key = normalize_storage_path(photo.storage_path)
    if key is None:
        raise ValidationFailed("invalid_photo_path", f"Invalid photo path '{photo.storage_path}'")

    return TurnPhoto(
        turn_id=turn_id,
        schema_version=PHOTO_SCHEMA_VERSION,
        shot_id=photo.shot_id,
        area_key=photo.area_key,
        storage_path=key,
        is_fix=is_fix,
        cleaner_note=photo.sent_note,
        cleaner_note_original=photo.note_original,
        cleaner_note_translated=photo.note_translated,
        cleaner_note_original_lang=_note_lang(photo.note_original_lang, photo.note_original, "es"),
        cleaner_note_translated_lang=_note_lang(photo.note_translated_lang, photo.note_translated, "en"),
    )


def build_photo_rows(turn_id: UUID, photos: list[PhotoIn], *, is_fix: bool = False) -> list[TurnPhoto]:
    return [build_photo_row(turn_id, p, is_fix=is_fix) for p in photos]


# =============================================================================
# Storage
# =============================================================================

def clamp_ttl(expires: int | None) -> int:
    if expires is None:
        expires = settings.SIGNED_URL_DEFAULT_SECONDS
    return max(MIN_SIGNED_URL_SECONDS, min(MAX_SIGNED_URL_SECONDS, int(expires)))


def sign_photo(
    db: Session,
    storage,
    actor: Actor,
    path: str,
    expires: int | None = None,
) -> tuple[str, int]:
    """
    Signed, time-limited read URL for one stored photo.

    Raises:
        Forbidden: path shape unknown, owner missing, or not accessible
    """
    key = require_path_access(db, actor, path)
    ttl = clamp_ttl(expires)
    url = storage.create_signed_url(key, ttl)
    logger.info(
        "Photo URL signed",
        extra=build_log_context(role=actor.role.value, subject_id=actor.subject_id, event="sign"),
    )
    return url, ttl


def validate_file(filename: str, content_type: str, file_size: int) -> tuple[bool, str | None]:
    """
    Validate file against allowlists and size limits.

    Returns (is_valid, error_message)
    """
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if ext not in ALLOWED_EXTENSIONS:
        return False, f"File extension '.{ext}' not allowed"

    if content_type not in ALLOWED_MIME_TYPES:
        return False, f"Content type '{content_type}' not allowed"

    if file_size == 0:
        return False, "File is empty"
    if file_size > MAX_FILE_SIZE_BYTES:
        max_mb = MAX_FILE_SIZE_BYTES / (1024 * 1024)
        return False, f"File size exceeds {max_mb:.0f} MB limit"

    return True, None


def read_upload(stream) -> bytes:
    """Read at most one byte past the size limit, so oversized files fail validation."""
    return stream.read(MAX_FILE_SIZE_BYTES + 1)


def _safe_filename(filename: str) -> str:
    base = os.path.basename(filename or "photo")
    return re.sub(r"[^A-Za-z0-9._-]", "_", base)[:100] or "photo"


def build_upload_key(turn_id: UUID, shot_id: UUID | None, filename: str) -> str:
    """turns/<turn_id>/<shot_id|misc>/<uuid>_<name>"""
    shot_part = str(shot_id) if shot_id else "misc"
    return f"turns/{turn_id}/{shot_part}/{uuid.uuid4().hex}_{_safe_filename(filename)}"


def upload_photo(
    db: Session,
    storage,
    actor: Actor,
    *,
    turn_id: UUID,
    shot_id: UUID | None,
    filename: str,
    content_type: str,
    data: bytes,
) -> str:
    """
    Store an uploaded photo under the turn's prefix and return its key.

    The key is not attached to the turn until submit/submit-fix.

    Raises:
        Forbidden: turn missing or not accessible
        ValidationFailed: file type or size rejected
    """
    require_turn_access(db, actor, turn_id)

    ok, error = validate_file(filename, content_type, len(data))
    if not ok:
        raise ValidationFailed("invalid_file", error)

    key = build_upload_key(turn_id, shot_id, filename)
    storage.put(key, data, content_type)
    logger.info(
        "Photo uploaded",
        extra=build_log_context(turn_id=turn_id, subject_id=actor.subject_id, event="upload"),
    )
    return key
