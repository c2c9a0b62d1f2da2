"""Property endpoints (cleaner assignment)."""

from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.deps import get_db, require_role
from app.core.turn_access import require_property_manager
from app.db.enums import Role
from app.schemas.auth import Actor
from app.services import property_service

router = APIRouter(prefix="/properties", tags=["properties"])


class AssignCleanerRequest(BaseModel):
    cleaner_id: UUID | None = None
    phone: str | None = None


class AssignCleanerResponse(BaseModel):
    ok: bool = True
    cleaner_id: UUID
    created: bool


@router.post("/{property_id}/cleaners", response_model=AssignCleanerResponse)
def assign_cleaner(
    property_id: UUID,
    body: AssignCleanerRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(Role.MANAGER)),
) -> AssignCleanerResponse:
    """
    Link a cleaner to a property the caller manages.

    Safe to repeat: an existing link is left as is (created=false).
    """
    require_property_manager(db, actor, property_id)
    cleaner = property_service.find_cleaner(db, cleaner_id=body.cleaner_id, phone=body.phone)
    created = property_service.assign_cleaner(db, property_id, cleaner.id)
    return AssignCleanerResponse(cleaner_id=cleaner.id, created=created)
