"""Integrity score for extracted receipts based on arithmetic consistency."""

from __future__ import annotations

import logging
from datetime import date

from .models import ReceiptData

logger = logging.getLogger(__name__)

INTEGRITY_THRESHOLD = 80


def calculate_receipt_integrity(data: ReceiptData) -> int:
    """Score an extraction from 0 to 100.

    Starts at 100 and subtracts penalties for a total that does not match
    the line items, tax that does not match the tax rate, inconsistent
    lines and missing fields.
    """
    score = 100.0
    penalties: list[str] = []

    items_sum = sum(item.total_price or 0 for item in data.items)
    tax = data.tax_amount or 0
    discount = data.discount or 0
    total = round(data.total, 2)

    # Receipts print totals either tax-exclusive or tax-inclusive
    diff_exclusive = abs(round(items_sum + tax - discount, 2) - total)
    diff_inclusive = abs(round(items_sum - discount, 2) - total)
    best_diff = min(diff_exclusive, diff_inclusive)
    model = "inclusive" if diff_inclusive < diff_exclusive else "exclusive"

    if best_diff > 0.1:
        penalty = min(30.0, best_diff / total * 100) if total > 0 else 30.0
        score -= penalty
        penalties.append(f"total mismatch: diff {best_diff:.2f} ({model})")

    if data.tax_rate and data.tax_rate > 0:
        implied_tax = total - total / (1 + data.tax_rate)
        tax_diff = abs(implied_tax - tax)
        if tax_diff > 1.0:
            penalty = min(20.0, tax_diff / tax * 100) if tax > 0 else 20.0
            score -= penalty
            penalties.append(
                f"tax mismatch: implied {implied_tax:.2f}, detected {tax:.2f}"
            )

    for index, item in enumerate(data.items, start=1):
        if item.quantity and item.unit_price and item.total_price:
            line_total = round(item.quantity * item.unit_price, 2)
            if abs(line_total - item.total_price) > 0.01:
                score -= 5
                penalties.append(f"line {index} mismatch")

    if not data.merchant_name or data.merchant_name.lower() == "unknown":
        score -= 10
        penalties.append("missing merchant name")
    if not _is_valid_date(data.date):
        score -= 10
        penalties.append("invalid date")
    if data.total <= 0:
        score -= 20
        penalties.append("zero or negative total")
    if not data.items:
        score -= 20
        penalties.append("no items found")

    final = max(0, min(100, round(score)))
    if penalties:
        logger.debug("Integrity score %d, penalties: %s", final, "; ".join(penalties))
    else:
        logger.debug("Integrity score %d", final)
    return final


def is_integrity_acceptable(score: float, threshold: float = INTEGRITY_THRESHOLD) -> bool:
    return score >= threshold


def _is_valid_date(value: str) -> bool:
    if not value:
        return False
    try:
        date.fromisoformat(value[:10])
    except ValueError:
        return False
    return True
