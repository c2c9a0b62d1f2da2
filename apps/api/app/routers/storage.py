"""Downloads for the local storage backend."""

import mimetypes

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from app.core.deps import get_storage
from app.core.errors import NotFound
from app.services.storage_client import LocalObjectStorage

router = APIRouter(prefix="/storage", tags=["storage"])


@router.get("/{path:path}")
def download_object(
    path: str,
    exp: int,
    sig: str,
    storage=Depends(get_storage),
):
    """
    Serve a stored photo behind a signed, expiring link (dev only).

    The link itself is the credential: it was issued by POST /photos/sign
    after the access check, so no session is required here. S3 links
    point at the bucket and never reach this route.
    """
    if not isinstance(storage, LocalObjectStorage):
        raise NotFound("not_found", "Not found")

    file_path = storage.resolve_signed(path, exp, sig)
    media_type, _ = mimetypes.guess_type(file_path)
    return FileResponse(file_path, media_type=media_type or "application/octet-stream")
