"""Utility modules."""

from app.utils.normalization import (
    normalize_keyword,
    normalize_phone,
)

__all__ = [
    # Normalization
    "normalize_keyword",
    "normalize_phone",
]
