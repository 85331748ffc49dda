"""
Normalization helpers

Category names are compared after normalization so that "Milk", " milk " and
"ＭＩＬＫ" count as the same category for a user.
"""

import re
import unicodedata


def normalize_category_name(value: str | None) -> str:
    """
    Normalize a category name for duplicate detection.

    - NFKC normalization (full-width to half-width)
    - case folding
    - runs of whitespace collapsed to a single space, ends trimmed

    Example:
        >>> normalize_category_name("  Morning   Milk ")
        'morning milk'
    """
    if not value:
        return ""
    normalized = unicodedata.normalize("NFKC", value)
    normalized = normalized.casefold()
    return re.sub(r"\s+", " ", normalized).strip()


def pick_palette_color(palette: tuple[str, ...], existing_count: int) -> str:
    """Rotate through ``palette`` based on how many items already exist."""
    return palette[existing_count % len(palette)]
