"""Tests for phone and keyword normalization."""
import pytest

from app.utils.normalization import normalize_phone


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("5551234567", "+15551234567"),
        ("15551234567", "+15551234567"),
        ("(555) 123-4567", "+15551234567"),
        ("+1 555 123 4567", "+15551234567"),
        ("+447700900123", "+447700900123"),
    ],
)
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected


@pytest.mark.parametrize("raw", ["", "   ", None])
def test_empty_phone_is_none(raw):
    assert normalize_phone(raw) is None


@pytest.mark.parametrize("raw", ["12", "not a phone", "+1555"])
def test_invalid_phone_raises(raw):
    with pytest.raises(ValueError):
        normalize_phone(raw)
