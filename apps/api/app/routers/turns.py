"""Turn lifecycle endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from app.core.deps import get_current_actor, get_db, get_sms_gateway, get_storage, require_role
from app.db.enums import Role
from app.schemas.auth import Actor
from app.schemas.turn import (
    ApproveRequest,
    ApproveResponse,
    NeedsFixRequest,
    NeedsFixResponse,
    NotifyRead,
    PhotoUploadResponse,
    SubmitFixRequest,
    TurnActionResponse,
    TurnRead,
    TurnStartRequest,
    TurnStartResponse,
    TurnSubmitRequest,
)
from app.services import photo_service, turn_service
from app.services.notification_service import NotifyResult

router = APIRouter(prefix="/turns", tags=["turns"])


def _notify_read(result: NotifyResult | None) -> NotifyRead | None:
    if result is None:
        return None
    return NotifyRead(sent=result.sent, reason=result.reason, to=result.to, sid=result.sid)


@router.post("/start", response_model=TurnStartResponse)
def start_turn(
    body: TurnStartRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> TurnStartResponse:
    """Start a turn. The cleaner must already be assigned to the property."""
    turn = turn_service.start_turn(
        db,
        actor,
        property_id=body.property_id,
        cleaner_id=body.cleaner_id,
        phone=body.phone,
    )
    return TurnStartResponse(turn_id=turn.id)


@router.get("/{turn_id}", response_model=TurnRead)
def get_turn(
    turn_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> TurnRead:
    turn = turn_service.get_turn(db, actor, turn_id)
    return TurnRead.model_validate(turn)


@router.post("/{turn_id}/submit", response_model=TurnActionResponse)
def submit_turn(
    turn_id: UUID,
    body: TurnSubmitRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(Role.CLEANER)),
    sms=Depends(get_sms_gateway),
) -> TurnActionResponse:
    outcome = turn_service.submit_turn(db, sms, actor, turn_id, body.photos)
    return TurnActionResponse(status=outcome.status.value, notify=_notify_read(outcome.notify))


@router.post("/{turn_id}/needs-fix", response_model=NeedsFixResponse)
def needs_fix(
    turn_id: UUID,
    body: NeedsFixRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(Role.MANAGER)),
    sms=Depends(get_sms_gateway),
) -> NeedsFixResponse:
    """Send a submitted turn back with an overall note and per-photo notes."""
    outcome = turn_service.flag_needs_fix(
        db,
        sms,
        actor,
        turn_id,
        note=body.note,
        note_original=body.note_original,
        note_translated=body.note_translated,
        photo_notes=body.photos,
    )
    return NeedsFixResponse(
        status=outcome.status.value,
        flagged_count=outcome.flagged_count,
        notify=_notify_read(outcome.notify),
    )


@router.post("/{turn_id}/submit-fix", response_model=TurnActionResponse)
def submit_fix(
    turn_id: UUID,
    body: SubmitFixRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(Role.CLEANER)),
    sms=Depends(get_sms_gateway),
) -> TurnActionResponse:
    """Append fix photos and resubmit for review."""
    outcome = turn_service.submit_fix(
        db,
        sms,
        actor,
        turn_id,
        body.photos,
        reply=body.reply,
        reply_original=body.reply_original,
        reply_translated=body.reply_translated,
        reply_original_lang=body.reply_original_lang,
        reply_translated_lang=body.reply_translated_lang,
    )
    return TurnActionResponse(status=outcome.status.value, notify=_notify_read(outcome.notify))


@router.post("/{turn_id}/approve", response_model=ApproveResponse)
def approve_turn(
    turn_id: UUID,
    body: ApproveRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_role(Role.MANAGER)),
    sms=Depends(get_sms_gateway),
) -> ApproveResponse:
    outcome = turn_service.approve_turn(
        db,
        sms,
        actor,
        turn_id,
        approved_by=body.approved_by,
        payout_amount_cents=body.payout_amount_cents,
    )
    return ApproveResponse(
        status=outcome.status.value,
        payout_ok=outcome.payout.ok if outcome.payout else None,
        payout_reference=outcome.payout.reference if outcome.payout else None,
        sms=_notify_read(outcome.notify),
    )


@router.post("/{turn_id}/photos/upload", response_model=PhotoUploadResponse)
def upload_photo(
    turn_id: UUID,
    file: UploadFile = File(...),
    shot_id: UUID | None = Form(default=None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    storage=Depends(get_storage),
) -> PhotoUploadResponse:
    """Store a photo under turns/<turn_id>/ and return its key."""
    data = photo_service.read_upload(file.file)
    key = photo_service.upload_photo(
        db,
        storage,
        actor,
        turn_id=turn_id,
        shot_id=shot_id,
        filename=file.filename or "photo",
        content_type=file.content_type or "application/octet-stream",
        data=data,
    )
    return PhotoUploadResponse(path=key)
