"""Session endpoints for both credential channels."""

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from app.core.deps import get_current_actor, get_db
from app.core.errors import Forbidden
from app.core.security import clear_field_session_cookie
from app.db.enums import Role
from app.db.models import Cleaner, Manager
from app.schemas.auth import Actor, MeResponse

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/me", response_model=MeResponse)
def get_me(
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> MeResponse:
    """
    Get the resolved identity for this request.

    Used by the frontend to decide between the manager and cleaner views.
    """
    model = Manager if actor.role == Role.MANAGER else Cleaner
    subject = db.get(model, actor.subject_id)
    if subject is None:
        raise Forbidden("no_role", "Subject no longer exists")

    return MeResponse(
        role=actor.role,
        subject_id=subject.id,
        name=subject.name,
        phone=subject.phone,
        phone_verified=subject.phone_verified_at is not None,
    )


@router.post("/logout")
def logout(response: Response) -> dict:
    """
    Clear the field-session cookie.

    Bearer sessions are owned by the identity provider and are not touched.
    """
    clear_field_session_cookie(response)
    return {"ok": True}
