"""SQLite storage for receipts and user preferences."""

from .preferences import PreferencesDB
from .receipts import ReceiptFilters, ReceiptPage, ReceiptStore, record_from_extraction
from .schema import ensure_schema

__all__ = [
    "ReceiptStore",
    "ReceiptFilters",
    "ReceiptPage",
    "PreferencesDB",
    "record_from_extraction",
    "ensure_schema",
]
