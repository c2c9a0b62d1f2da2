"""Tests for turn notifications (recipient resolution, refusal reasons, audit trail)."""
import uuid

import pytest

from app.db.enums import AuditEvent, TurnEventKind, TurnStatus
from app.db.types import utcnow
from app.services import notification_service, turn_event_service
from app.services.notification_service import check_sendable, resolve_manager


def test_submitted_goes_to_manager_with_review_link(db, sms, manager, make_turn):
    turn = make_turn(TurnStatus.SUBMITTED)
    result = notification_service.notify_turn_event(db, sms, turn.id, TurnEventKind.SUBMITTED)

    assert result.sent is True
    assert result.to == "***0001"
    assert result.sid == "SM0001"
    to, body = sms.sent[0]
    assert to == manager.phone
    assert body.startswith("TurnQA: Rosa submitted a turn")
    assert "Seaside Loft · 4B" in body
    assert body.endswith(notification_service.SMS_FOOTER)


def test_approved_goes_to_cleaner(db, sms, cleaner, make_turn):
    turn = make_turn(TurnStatus.APPROVED)
    result = notification_service.notify_turn_event(db, sms, turn.id, TurnEventKind.APPROVED)
    assert result.sent is True
    assert sms.sent[0][0] == cleaner.phone
    assert f"/turns/{turn.id}/done" in sms.sent[0][1]


@pytest.mark.parametrize(
    "field, value, reason",
    [
        ("phone", None, "no_phone"),
        ("phone", "5550000101", "invalid_phone"),
        ("sms_consent", False, "no_consent"),
        ("phone_verified_at", None, "not_verified"),
        ("sms_opt_out_at", "now", "opted_out"),
    ],
)
def test_refusal_reasons(db, sms, cleaner, make_turn, field, value, reason):
    turn = make_turn(TurnStatus.NEEDS_FIX)
    setattr(cleaner, field, utcnow() if value == "now" else value)
    db.commit()

    assert check_sendable(cleaner) == reason
    result = notification_service.notify_turn_event(db, sms, turn.id, TurnEventKind.NEEDS_FIX)
    assert result.sent is False
    assert result.reason == reason
    assert sms.sent == []


def test_every_attempt_is_recorded(db, sms, cleaner, make_turn):
    turn = make_turn(TurnStatus.NEEDS_FIX)
    cleaner.sms_consent = False
    db.commit()

    notification_service.notify_turn_event(db, sms, turn.id, TurnEventKind.NEEDS_FIX)

    events = turn_event_service.list_events(db, turn.id, AuditEvent.NOTIFICATION)
    assert len(events) == 1
    assert events[0].meta == {
        "kind": "needs_fix",
        "sent": False,
        "reason": "no_consent",
        "to": "***0101",
        "sid": None,
    }


def test_send_failure_is_reported_not_raised(db, sms, make_turn):
    turn = make_turn(TurnStatus.SUBMITTED)
    sms.fail = True
    result = notification_service.notify_turn_event(db, sms, turn.id, TurnEventKind.SUBMITTED)
    assert result.sent is False
    assert result.reason == "send_failed"


def test_unconfigured_gateway(db, sms, make_turn):
    turn = make_turn(TurnStatus.SUBMITTED)
    sms.is_configured = False
    result = notification_service.notify_turn_event(db, sms, turn.id, TurnEventKind.SUBMITTED)
    assert result.reason == "sms_not_configured"


def test_missing_turn(db, sms):
    result = notification_service.notify_turn_event(db, sms, uuid.uuid4(), TurnEventKind.SUBMITTED)
    assert result.sent is False
    assert result.reason == "turn_not_found"


def test_unknown_event_kind(db, sms, make_turn):
    turn = make_turn()
    result = notification_service.notify_turn_event(db, sms, turn.id, "cancelled")
    assert result.reason == "unknown_event"


def test_manager_falls_back_to_latest_verified_in_org(db, manager, other_manager, prop, make_turn):
    turn = make_turn(TurnStatus.SUBMITTED)
    turn.manager_id = None
    prop.manager_id = None
    other_manager.phone_verified_at = utcnow()
    db.commit()

    assert resolve_manager(db, turn, prop).id == other_manager.id


def test_no_manager_anywhere(db, sms, prop, make_turn):
    turn = make_turn(TurnStatus.SUBMITTED)
    turn.manager_id = None
    prop.manager_id = None
    prop.org_id = None
    db.commit()

    result = notification_service.notify_turn_event(db, sms, turn.id, TurnEventKind.SUBMITTED)
    assert result.reason == "no_manager"
