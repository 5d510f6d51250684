"""Day bucketing of receipts for charts and stat cards.

Every chart works off the same dense list of calendar days ending today.
Day keys are ``YYYY-MM-DD`` strings in local time; a receipt is placed by
the key of the date selected by the date mode.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Iterable, Sequence

DATE_MODES = ("transaction", "created")

# Python 3.10 fromisoformat only takes 3 or 6 fraction digits
_FRACTION_RE = re.compile(r"\.(\d+)")

# Monday-first short weekday names per language
_WEEKDAY_NAMES: dict[str, tuple[str, ...]] = {
    "en": ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"),
    "es": ("lun", "mar", "mié", "jue", "vie", "sáb", "dom"),
    "pt": ("seg.", "ter.", "qua.", "qui.", "sex.", "sáb.", "dom."),
}


@dataclass
class DayBucket:
    """One calendar day of aggregated receipts."""

    date_key: str
    day_name: str
    receipts: list = field(default_factory=list)
    count: int = 0
    total_spent: float = 0.0
    is_today: bool = False


def to_day_key(value: str | date | datetime | None) -> str | None:
    """Return the local ``YYYY-MM-DD`` key for a date, timestamp or ISO string.

    Date-only strings name the local day directly. Aware timestamps are
    converted to local time first. Returns None for unusable values.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone()
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if not isinstance(value, str):
        return None

    text = value.strip()
    if len(text) == 10:
        try:
            return date.fromisoformat(text).isoformat()
        except ValueError:
            return None
    try:
        parsed = parse_timestamp(text)
    except ValueError:
        return None
    return to_day_key(parsed)


def parse_timestamp(text: str) -> datetime:
    """Parse an ISO 8601 timestamp, accepting "Z" and any fraction length.

    Raises:
        ValueError: If the text is not an ISO timestamp.
    """
    text = text.strip().replace("Z", "+00:00")
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    return datetime.fromisoformat(text)


def _today(now: datetime | None) -> date:
    return (now or datetime.now()).date()


def last_n_days_keys(days: int, now: datetime | None = None) -> list[str]:
    """Keys for the last ``days`` calendar days, oldest first, ending today."""
    today = _today(now)
    return [(today - timedelta(days=i)).isoformat() for i in range(days - 1, -1, -1)]


def day_name(date_key: str, locale: str = "en") -> str:
    """Short weekday name of a day key in the given locale.

    Locale tags resolve by language prefix ("es-CL" -> "es"); unknown
    languages use English.
    """
    language = (locale or "en").replace("_", "-").split("-")[0].lower()
    names = _WEEKDAY_NAMES.get(language, _WEEKDAY_NAMES["en"])
    return names[date.fromisoformat(date_key).weekday()]


def _field(receipt: Any, name: str) -> Any:
    if isinstance(receipt, dict):
        return receipt.get(name)
    return getattr(receipt, name, None)


def receipt_day_key(receipt: Any, date_mode: str = "transaction") -> str | None:
    """Day key of a receipt under the given date mode.

    "transaction" prefers the transaction date and falls back to the
    creation timestamp; "created" always uses the creation timestamp.
    """
    if date_mode == "created":
        return to_day_key(_field(receipt, "created_at"))
    if date_mode == "transaction":
        key = to_day_key(_field(receipt, "transaction_date"))
        if key is None:
            key = to_day_key(_field(receipt, "created_at"))
        return key
    raise ValueError(
        f"Unknown date mode: {date_mode!r} (expected one of {', '.join(DATE_MODES)})"
    )


def receipt_amount(receipt: Any) -> float:
    """Total amount of a receipt, counting missing or NaN as zero."""
    amount = _field(receipt, "total_amount")
    if amount is None:
        return 0.0
    try:
        value = float(amount)
    except (TypeError, ValueError):
        return 0.0
    return 0.0 if math.isnan(value) else value


def group_by_day(
    receipts: Iterable[Any],
    window_size_days: int = 7,
    locale: str = "en",
    date_mode: str = "transaction",
    *,
    now: datetime | None = None,
) -> list[DayBucket]:
    """Bucket receipts into consecutive days ending today.

    Returns exactly ``window_size_days`` buckets ordered oldest to newest,
    including empty days. Receipts without a usable date, or falling
    outside the window, are skipped.
    """
    if date_mode not in DATE_MODES:
        raise ValueError(
            f"Unknown date mode: {date_mode!r} (expected one of {', '.join(DATE_MODES)})"
        )
    if window_size_days <= 0:
        return []

    today_key = _today(now).isoformat()
    keys = last_n_days_keys(window_size_days, now)
    buckets: dict[str, DayBucket] = {
        key: DayBucket(
            date_key=key,
            day_name=day_name(key, locale),
            is_today=key == today_key,
        )
        for key in keys
    }

    for receipt in receipts:
        bucket = buckets.get(receipt_day_key(receipt, date_mode))
        if bucket is None:
            continue
        bucket.receipts.append(receipt)
        bucket.count += 1
        bucket.total_spent += receipt_amount(receipt)

    return [buckets[key] for key in keys]


def filter_receipts_by_days(
    receipts: Sequence[Any],
    days: int,
    date_mode: str = "transaction",
    *,
    now: datetime | None = None,
) -> list[Any]:
    """Receipts that fall within the last ``days`` days, in input order.

    Uses the same day keys as group_by_day so both agree on the range.
    """
    valid = set(last_n_days_keys(days, now))
    return [r for r in receipts if receipt_day_key(r, date_mode) in valid]
