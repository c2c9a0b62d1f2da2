"""Pydantic schemas for turns, turn photos and review actions."""

from datetime import datetime
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def _blank_to_none(value):
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


# =============================================================================
# Photo input adapter
# =============================================================================

class PhotoIn(BaseModel):
    """
    One incoming photo reference.

    Clients have sent the object key under several names over time
    (path, url, storage_path, photo_path, file) and the shot id as
    shotId or shot_id; all of them land in the same fields here.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    storage_path: str = Field(
        validation_alias=AliasChoices("storage_path", "path", "url", "photo_path", "file"),
        min_length=1,
    )
    shot_id: UUID | None = Field(default=None, validation_alias=AliasChoices("shot_id", "shotId"))
    area_key: str = Field(default="", validation_alias=AliasChoices("area_key", "areaKey"))

    note: str | None = Field(default=None, validation_alias=AliasChoices("note", "cleaner_note"))
    note_original: str | None = Field(
        default=None, validation_alias=AliasChoices("note_original", "cleaner_note_original")
    )
    note_translated: str | None = Field(
        default=None, validation_alias=AliasChoices("note_translated", "cleaner_note_translated")
    )
    note_original_lang: str | None = Field(
        default=None,
        validation_alias=AliasChoices("note_original_lang", "cleaner_note_original_lang"),
    )
    note_translated_lang: str | None = Field(
        default=None,
        validation_alias=AliasChoices("note_translated_lang", "cleaner_note_translated_lang"),
    )

    @field_validator(
        "shot_id",
        "note",
        "note_original",
        "note_translated",
        "note_original_lang",
        "note_translated_lang",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, v):
        return _blank_to_none(v)

    @field_validator("area_key", mode="before")
    @classmethod
    def default_area_key(cls, v):
        if v is None:
            return ""
        return v.strip() if isinstance(v, str) else v

    @property
    def sent_note(self) -> str | None:
        """Manager-facing note: translated, else plain, else original."""
        return self.note_translated or self.note or self.note_original


class PhotoNoteIn(BaseModel):
    """Per-photo manager note on a needs-fix review."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    photo_id: UUID | None = Field(default=None, validation_alias=AliasChoices("photo_id", "id"))
    storage_path: str | None = Field(
        default=None,
        validation_alias=AliasChoices("storage_path", "path", "url", "photo_path", "file"),
    )
    note: str | None = None

    @field_validator("photo_id", "storage_path", "note", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        return _blank_to_none(v)


# =============================================================================
# Requests
# =============================================================================

class TurnStartRequest(BaseModel):
    property_id: UUID
    cleaner_id: UUID | None = None
    phone: str | None = None


class TurnSubmitRequest(BaseModel):
    photos: list[PhotoIn] = Field(default_factory=list)


class NeedsFixRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    note: str | None = Field(default=None, validation_alias=AliasChoices("note", "summary"))
    note_original: str | None = None
    note_translated: str | None = None
    photos: list[PhotoNoteIn] = Field(
        default_factory=list, validation_alias=AliasChoices("photos", "notes")
    )


class SubmitFixRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    photos: list[PhotoIn] = Field(default_factory=list)
    reply: str | None = Field(default=None, validation_alias=AliasChoices("reply", "cleaner_reply"))
    reply_original: str | None = None
    reply_translated: str | None = None
    reply_original_lang: str | None = None
    reply_translated_lang: str | None = None


class ApproveRequest(BaseModel):
    approved_by: str | None = None
    payout_amount_cents: int | None = Field(default=None, ge=0)


# =============================================================================
# Responses
# =============================================================================

class NotifyRead(BaseModel):
    sent: bool
    reason: str | None = None
    to: str | None = None
    sid: str | None = None


class TurnStartResponse(BaseModel):
    ok: bool = True
    turn_id: UUID


class TurnActionResponse(BaseModel):
    ok: bool = True
    status: str
    notify: NotifyRead | None = None


class NeedsFixResponse(TurnActionResponse):
    flagged_count: int = 0


class ApproveResponse(BaseModel):
    ok: bool = True
    status: str
    payout_ok: bool | None = None
    payout_reference: str | None = None
    sms: NotifyRead | None = None


class TurnPhotoRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    schema_version: int
    shot_id: UUID | None
    area_key: str
    storage_path: str
    is_fix: bool
    cleaner_note: str | None
    needs_fix: bool
    manager_note: str | None
    created_at: datetime


class TurnRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    property_id: UUID
    cleaner_id: UUID
    manager_id: UUID | None
    status: str
    created_at: datetime
    submitted_at: datetime | None
    needs_fix_at: datetime | None
    last_fix_submitted_at: datetime | None
    approved_at: datetime | None
    approved_by: str | None
    manager_note: str | None
    cleaner_reply: str | None
    photos: list[TurnPhotoRead] = Field(default_factory=list)


# =============================================================================
# Photo signing / upload
# =============================================================================

class PhotoSignRequest(BaseModel):
    path: str = Field(min_length=1)
    expires: int | None = None


class PhotoSignResponse(BaseModel):
    url: str
    expires_in: int


class PhotoUploadResponse(BaseModel):
    ok: bool = True
    path: str
