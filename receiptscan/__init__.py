"""Receipt extraction and spend analytics."""

from .config import (
    DashboardConfig,
    DatabaseConfig,
    LocaleConfig,
    ScanConfig,
    ScannerConfig,
    VisionConfig,
    load_config,
)
from .currency import format_price
from .dates import DayBucket, filter_receipts_by_days, group_by_day
from .integrity import calculate_receipt_integrity, is_integrity_acceptable
from .models import LineItem, ReceiptData, ReceiptRecord
from .numbers import parse_monetary_value, parse_number
from .scanner import AnalysisItem, AnalysisStatus, ReceiptScanner
from .stats import DashboardStats, calculate_dashboard_stats, get_category_breakdown
from .vision import ExtractionBackend, ExtractionError, ImagePayload, create_backend

__all__ = [
    "parse_number",
    "parse_monetary_value",
    "format_price",
    "DayBucket",
    "group_by_day",
    "filter_receipts_by_days",
    "DashboardStats",
    "calculate_dashboard_stats",
    "get_category_breakdown",
    "calculate_receipt_integrity",
    "is_integrity_acceptable",
    "LineItem",
    "ReceiptData",
    "ReceiptRecord",
    "AnalysisItem",
    "AnalysisStatus",
    "ReceiptScanner",
    "ExtractionBackend",
    "ExtractionError",
    "ImagePayload",
    "create_backend",
    "ScanConfig",
    "VisionConfig",
    "ScannerConfig",
    "LocaleConfig",
    "DatabaseConfig",
    "DashboardConfig",
    "load_config",
]
