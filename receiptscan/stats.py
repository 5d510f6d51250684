"""Dashboard stat cards and category breakdown built on day buckets."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Sequence

from .categories import DEFAULT_CATEGORY
from .dates import DayBucket, group_by_day, receipt_amount, receipt_day_key

VIEW_MODES = ("weekly", "monthly")


@dataclass
class DashboardStats:
    total_spent: float
    items_processed: int
    new_scans_today: int
    spend_trend: float | None
    count_trend: float | None


@dataclass
class CategoryShare:
    category: str
    amount: float
    percentage: float


def _trend(current: float, previous: float) -> float | None:
    if previous == 0:
        return None
    return (current - previous) / previous * 100


def _previous_period(view_mode: str, today: date) -> tuple[str, str]:
    """Inclusive day-key range of the period the current view is compared to."""
    if view_mode == "weekly":
        # The seven days before the current rolling week
        return (
            (today - timedelta(days=13)).isoformat(),
            (today - timedelta(days=7)).isoformat(),
        )
    last_month_end = today.replace(day=1) - timedelta(days=1)
    return last_month_end.replace(day=1).isoformat(), last_month_end.isoformat()


def calculate_dashboard_stats(
    receipts: Sequence[Any],
    view_mode: str = "weekly",
    date_mode: str = "transaction",
    *,
    now: datetime | None = None,
) -> DashboardStats:
    """Totals for the current window plus trends against the previous period.

    The weekly view covers the last 7 days; the monthly view covers the
    days elapsed in the current calendar month and compares against the
    whole previous month.
    """
    if view_mode not in VIEW_MODES:
        raise ValueError(f"Unknown view mode: {view_mode!r} (weekly / monthly)")

    now = now or datetime.now()
    today = now.date()
    days = 7 if view_mode == "weekly" else today.day
    buckets = group_by_day(receipts, days, "en", date_mode, now=now)

    total_spent = sum(b.total_spent for b in buckets)
    items_processed = sum(b.count for b in buckets)
    today_bucket = next((b for b in buckets if b.is_today), None)
    new_scans_today = today_bucket.count if today_bucket else 0

    start, end = _previous_period(view_mode, today)
    previous = [
        r for r in receipts
        if (key := receipt_day_key(r, date_mode)) is not None and start <= key <= end
    ]
    previous_spent = sum(receipt_amount(r) for r in previous)

    return DashboardStats(
        total_spent=total_spent,
        items_processed=items_processed,
        new_scans_today=new_scans_today,
        spend_trend=_trend(total_spent, previous_spent),
        count_trend=_trend(items_processed, len(previous)),
    )


def get_category_breakdown(
    buckets: Sequence[DayBucket], top_n: int = 5
) -> list[CategoryShare]:
    """Top categories by amount across all buckets, largest first."""
    totals: dict[str, float] = {}
    grand_total = 0.0

    for bucket in buckets:
        for receipt in bucket.receipts:
            category = (
                receipt.get("category") if isinstance(receipt, dict)
                else getattr(receipt, "category", None)
            ) or DEFAULT_CATEGORY
            amount = receipt_amount(receipt)
            totals[category] = totals.get(category, 0.0) + amount
            grand_total += amount

    shares = [
        CategoryShare(
            category=category,
            amount=amount,
            percentage=amount / grand_total * 100 if grand_total > 0 else 0.0,
        )
        for category, amount in totals.items()
    ]
    shares.sort(key=lambda s: s.amount, reverse=True)
    return shares[:top_n]
