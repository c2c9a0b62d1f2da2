"""Data normalization utilities for consistent data quality."""

import re
from typing import Optional

import phonenumbers


DEFAULT_PHONE_REGION = "US"


def normalize_phone(phone: Optional[str], region: str = DEFAULT_PHONE_REGION) -> Optional[str]:
    """
    Normalize phone to E.164 format (+15551234567).

    Accepts:
    - 10 digits: 5551234567 → +15551234567
    - 11 digits starting with 1: 15551234567 → +15551234567
    - Formatted: (555) 123-4567 → +15551234567
    - Already E.164 (any country): +447700900123 → +447700900123

    Only the number's shape is checked (``is_possible_number``); carrier
    allocation is not, so reserved test ranges such as 555 stay usable.

    Args:
        phone: Raw phone input
        region: Region assumed for numbers without a leading +

    Returns:
        E.164 formatted phone or None if empty

    Raises:
        ValueError: If phone cannot be parsed into a possible number
    """
    if not phone or not phone.strip():
        return None

    cleaned = phone.strip()
    try:
        parsed = phonenumbers.parse(cleaned, None if cleaned.startswith("+") else region)
    except phonenumbers.NumberParseException as exc:
        raise ValueError(f"Invalid phone number '{phone}'.") from exc

    if not phonenumbers.is_possible_number(parsed):
        raise ValueError(f"Invalid phone number '{phone}'.")

    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)


def normalize_keyword(body: Optional[str]) -> str:
    """
    Reduce an inbound SMS body to its leading keyword.

    "  stop please" → "STOP", "Stop." → "STOP", "" → ""
    """
    if not body:
        return ""
    first = body.strip().split(maxsplit=1)
    if not first:
        return ""
    return re.sub(r"[^A-Z]", "", first[0].upper())
