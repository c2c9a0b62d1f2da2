"""Signed photo URLs."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.deps import get_current_actor, get_db, get_storage
from app.schemas.auth import Actor
from app.schemas.turn import PhotoSignRequest, PhotoSignResponse
from app.services import photo_service

router = APIRouter(prefix="/photos", tags=["photos"])


@router.post("/sign", response_model=PhotoSignResponse)
def sign_photo(
    body: PhotoSignRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    storage=Depends(get_storage),
) -> PhotoSignResponse:
    """
    Issue a time-limited read URL for a stored photo.

    The path must map to a turn or template shot the caller may access;
    unknown path shapes are refused.
    """
    url, ttl = photo_service.sign_photo(db, storage, actor, body.path, body.expires)
    return PhotoSignResponse(url=url, expires_in=ttl)
