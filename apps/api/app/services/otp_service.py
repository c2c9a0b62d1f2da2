"""Phone verification service - one-time SMS codes bound to (role, phone).

Phone is the identity key: a caller-supplied subject id is only a hint,
and the row that already owns the phone wins. A hinted row only takes the
phone once a code sent to it is verified.
"""

from __future__ import annotations

import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import Conflict, RateLimited, Upstream, ValidationFailed
from app.core.security import create_field_session_token
from app.core.structured_logging import build_log_context
from app.db.enums import Role
from app.db.models import Cleaner, Manager, OtpChallenge
from app.db.types import utcnow
from app.services.sms_gateway import SmsNotConfigured, SmsSendError
from app.utils.normalization import normalize_phone

logger = logging.getLogger(__name__)


CODE_TTL = timedelta(minutes=10)
RESEND_INTERVAL = timedelta(seconds=60)
MAX_ATTEMPTS = 5
CONSENT_TEXT = (
    "I agree to receive transactional SMS. Message & data rates may apply. "
    "Reply STOP to opt out, HELP for help. Consent is not a condition of purchase."
)


@dataclass(frozen=True)
class OtpSendResult:
    subject_id: UUID
    phone: str
    sms_sid: str


@dataclass(frozen=True)
class OtpVerifyResult:
    role: Role
    subject_id: UUID
    phone: str
    session_token: str | None = None


def _subject_model(role: Role):
    return Manager if role == Role.MANAGER else Cleaner


def _generate_code() -> str:
    return f"{secrets.randbelow(1_000_000):06d}"


def parse_phone(phone_raw: str | None) -> str:
    """
    Normalize to E.164 or raise.

    Raises:
        ValidationFailed: empty or malformed phone
    """
    try:
        phone = normalize_phone(phone_raw)
    except ValueError as exc:
        raise ValidationFailed("invalid_phone", "Invalid phone number") from exc
    if not phone:
        raise ValidationFailed("phone_required", "phone required")
    return phone


def is_opted_out(db: Session, phone: str) -> bool:
    """True if the phone opted out on either the manager or the cleaner side."""
    for model in (Manager, Cleaner):
        opted = db.scalar(
            select(model.id).where(model.phone == phone, model.sms_opt_out_at.is_not(None))
        )
        if opted:
            return True
    return False


def _find_by_phone(db: Session, model, phone: str):
    return db.scalar(select(model).where(model.phone == phone))


def _resolve_subject(
    db: Session,
    role: Role,
    phone: str,
    subject_id: UUID | None,
    display_name: str | None,
):
    """
    Find or create the subject row the code is issued for.

    Flushes but does not commit. On a uniqueness race the transaction is
    rolled back and the row that won is returned.
    """
    model = _subject_model(role)

    owner = _find_by_phone(db, model, phone)
    if owner is not None:
        if subject_id and owner.id != subject_id:
            logger.info(
                "Phone already owned by another subject, using owner",
                extra=build_log_context(role=role.value, subject_id=owner.id, phone=phone),
            )
        return owner

    row = db.get(model, subject_id) if subject_id else None
    if row is not None:
        # phone stays on the challenge until verify_code
        return row

    try:
        row = model(name=display_name or role.value, phone=phone)
        db.add(row)
        db.flush()
    except IntegrityError:
        db.rollback()
        owner = _find_by_phone(db, model, phone)
        if owner is None:
            raise
        return owner
    return row


def send_code(
    db: Session,
    sms,
    *,
    role: Role,
    phone_raw: str | None,
    subject_id: UUID | None = None,
    display_name: str | None = None,
    consent: bool = True,
) -> OtpSendResult:
    """
    Issue a new code and text it to the phone.

    Nothing is committed unless the SMS gateway accepted the message.

    Raises:
        ValidationFailed: bad phone, missing consent
        Conflict: phone opted out (code "opted_out")
        RateLimited: a code was issued for this subject under 60s ago
        Upstream: SMS not configured or send failed
    """
    phone = parse_phone(phone_raw)
    if not consent:
        raise ValidationFailed("consent_required", "consent required")

    if is_opted_out(db, phone):
        raise Conflict(
            "opted_out",
            f"This number has opted out of SMS. Text START to {settings.sms_sender_label} "
            "to re-subscribe, then try again.",
        )

    if not getattr(sms, "is_configured", True):
        raise Upstream("sms_not_configured", "SMS is not configured")

    subject = _resolve_subject(db, role, phone, subject_id, display_name)

    # Soft throttle: read-then-write, a race can issue one extra code
    now = utcnow()
    last_created = db.scalar(
        select(OtpChallenge.created_at)
        .where(OtpChallenge.role == role.value, OtpChallenge.subject_id == subject.id)
        .order_by(OtpChallenge.created_at.desc())
        .limit(1)
    )
    if last_created is not None and now - last_created < RESEND_INTERVAL:
        db.rollback()
        raise RateLimited("rate_limited", "Please wait before requesting another code")

    code = _generate_code()
    challenge = OtpChallenge(
        role=role.value,
        subject_id=subject.id,
        phone=phone,
        code=code,
        expires_at=now + CODE_TTL,
    )
    db.add(challenge)
    db.flush()

    body = f"{settings.SMS_BRAND_NAME} code: {code}. Reply STOP to opt out, HELP for help."
    try:
        message = sms.send(phone, body)
    except SmsNotConfigured as exc:
        db.rollback()
        raise Upstream("sms_not_configured", "SMS is not configured") from exc
    except SmsSendError as exc:
        db.rollback()
        logger.warning(
            "OTP send failed",
            extra=build_log_context(role=role.value, subject_id=subject.id, phone=phone, reason=str(exc)),
        )
        raise Upstream("sms_send_failed", "Could not send verification code") from exc

    subject_id_out = subject.id
    db.commit()
    logger.info(
        "OTP sent",
        extra=build_log_context(role=role.value, subject_id=subject_id_out, phone=phone),
    )
    return OtpSendResult(subject_id=subject_id_out, phone=phone, sms_sid=message.id)


def verify_code(
    db: Session,
    *,
    role: Role,
    phone_raw: str | None,
    code: str,
    subject_id: UUID | None = None,
    client_ip: str | None = None,
) -> OtpVerifyResult:
    """
    Check a code against the newest unused challenge for (role, phone).

    On success the challenge is consumed, the subject's phone is marked
    verified and consented, and cleaners get a field-session token.

    Raises:
        ValidationFailed: "code not found", "code expired",
            "too many attempts", "invalid code"
        Conflict: the phone was claimed by another row after the code
            was sent (code "phone_in_use")
    """
    phone = parse_phone(phone_raw)
    code = (code or "").strip()
    if not code:
        raise ValidationFailed("code required", "code required")

    challenge = db.scalar(
        select(OtpChallenge)
        .where(
            OtpChallenge.role == role.value,
            OtpChallenge.phone == phone,
            OtpChallenge.used_at.is_(None),
        )
        .order_by(OtpChallenge.created_at.desc())
        .limit(1)
    )
    if challenge is None:
        raise ValidationFailed("code not found", "code not found")

    now = utcnow()
    if challenge.expires_at < now:
        raise ValidationFailed("code expired", "code expired")

    if challenge.attempts >= MAX_ATTEMPTS:
        raise ValidationFailed("too many attempts", "too many attempts, request a new code")

    if not hmac.compare_digest(challenge.code, code):
        challenge.attempts += 1
        db.commit()
        logger.info(
            "OTP mismatch",
            extra=build_log_context(role=role.value, subject_id=challenge.subject_id, phone=phone),
        )
        raise ValidationFailed("invalid code", "invalid code")

    if subject_id and subject_id != challenge.subject_id:
        logger.info(
            "OTP verified for phone owner, not supplied subject",
            extra=build_log_context(role=role.value, subject_id=challenge.subject_id),
        )

    challenge.used_at = now
    subject = db.get(_subject_model(role), challenge.subject_id)
    if subject is None:
        db.rollback()
        raise ValidationFailed("code not found", "code not found")

    if subject.phone != phone:
        owner = _find_by_phone(db, _subject_model(role), phone)
        if owner is not None:
            db.rollback()
            raise Conflict("phone_in_use", "This phone is linked to another account")
        subject.phone = phone
    subject.phone_verified_at = now
    subject.sms_consent = True
    subject.sms_consent_at = now
    subject.sms_consent_ip = client_ip
    subject.consent_text_snapshot = CONSENT_TEXT

    verified_id = subject.id
    db.commit()

    token = None
    if role == Role.CLEANER:
        token = create_field_session_token(verified_id, phone)

    logger.info(
        "OTP verified",
        extra=build_log_context(role=role.value, subject_id=verified_id, phone=phone),
    )
    return OtpVerifyResult(role=role, subject_id=verified_id, phone=phone, session_token=token)
