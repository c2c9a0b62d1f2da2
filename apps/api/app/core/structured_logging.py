"""Structured logging helpers (PII-safe: phones are masked)."""

from typing import Any
from uuid import UUID


def mask_phone(phone: str | None) -> str | None:
    """Keep only the last four digits, e.g. ``***4567``."""
    if not phone:
        return None
    return f"***{phone[-4:]}"


def build_log_context(
    *,
    role: str | None = None,
    subject_id: UUID | str | None = None,
    turn_id: UUID | str | None = None,
    phone: str | None = None,
    event: str | None = None,
    reason: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict for ``extra=``."""
    context: dict[str, Any] = {}
    if role:
        context["role"] = role
    if subject_id:
        context["subject_id"] = str(subject_id)
    if turn_id:
        context["turn_id"] = str(turn_id)
    if phone:
        context["phone"] = mask_phone(phone)
    if event:
        context["event"] = event
    if reason:
        context["reason"] = reason
    return context
