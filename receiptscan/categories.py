"""Fixed receipt category set."""

from __future__ import annotations

RECEIPT_CATEGORIES: tuple[str, ...] = (
    "Food",
    "Dining",
    "Transport",
    "Utilities",
    "Entertainment",
    "Shopping",
    "Groceries",
    "Gas",
    "Health",
    "Other",
)

DEFAULT_CATEGORY = "Other"

_LOOKUP: dict[str, str] = {c.lower(): c for c in RECEIPT_CATEGORIES}


def normalize_category(value: object) -> str:
    """Map a raw category guess onto the fixed set ("Other" if unknown)."""
    if not isinstance(value, str) or not value:
        return DEFAULT_CATEGORY
    return _LOOKUP.get(value.strip().lower(), DEFAULT_CATEGORY)
