"""Enum definitions for application constants."""

from enum import Enum


class Role(str, Enum):
    """
    Actor roles. The two populations are disjoint.

    - MANAGER: office account, authenticated by a provider bearer token
    - CLEANER: field worker, authenticated by phone OTP + field session
    """
    MANAGER = "manager"
    CLEANER = "cleaner"


class TurnStatus(str, Enum):
    """
    Turn lifecycle.

        in_progress → submitted → needs_fix → submitted → approved
                                ↘ approved

    cancelled is terminal and reachable from any non-terminal state.
    """
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    NEEDS_FIX = "needs_fix"
    APPROVED = "approved"
    CANCELLED = "cancelled"


TERMINAL_TURN_STATUSES = frozenset({TurnStatus.APPROVED, TurnStatus.CANCELLED})


class TurnEventKind(str, Enum):
    """Kinds of turn events fed to the notification dispatcher."""
    SUBMITTED = "submitted"
    FIX = "fix"
    NEEDS_FIX = "needs_fix"
    APPROVED = "approved"


# Which side of the review gets told about each event
MANAGER_EVENTS = frozenset({TurnEventKind.SUBMITTED, TurnEventKind.FIX})
CLEANER_EVENTS = frozenset({TurnEventKind.NEEDS_FIX, TurnEventKind.APPROVED})


class AuditEvent(str, Enum):
    """Event names written to the turn_events trail."""
    STARTED = "started"
    SUBMITTED = "submitted"
    NEEDS_FIX = "needs_fix"
    FIX_SUBMITTED = "fix_submitted"
    APPROVED = "approved"
    NOTIFICATION = "notification"
    PAYOUT_REQUESTED = "payout_requested"
