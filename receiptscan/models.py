"""Data models for extracted receipts and stored receipt records."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from .categories import DEFAULT_CATEGORY, normalize_category
from .numbers import parse_monetary_value, parse_number


@dataclass
class LineItem:
    """A single purchased line on a receipt."""

    name: str
    quantity: float = 1.0
    unit_price: float | None = None
    total_price: float = 0.0


@dataclass
class ReceiptData:
    """Structured fields returned by the extraction service."""

    merchant_name: str
    date: str
    currency: str
    items: list[LineItem] = field(default_factory=list)
    total: float = 0.0
    tax_amount: float | None = None
    discount: float | None = None
    category: str = DEFAULT_CATEGORY
    tax_rate: float | None = None
    integrity_score: float | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any], region: str | None = None) -> ReceiptData:
        """Build from the service's camelCase JSON.

        Numeric fields may arrive as printed strings ("2.050") and are
        normalized with the region's separator convention.
        """
        items = [
            LineItem(
                name=str(item.get("name", "")),
                quantity=_number(item.get("quantity"), region, default=1.0),
                unit_price=_optional_money(item.get("unitPrice"), region),
                total_price=_money(item.get("totalPrice"), region),
            )
            for item in raw.get("items") or []
        ]
        return cls(
            merchant_name=str(raw.get("merchantName") or ""),
            date=str(raw.get("date") or ""),
            currency=str(raw.get("currency") or ""),
            items=items,
            total=_money(raw.get("total"), region),
            tax_amount=_optional_money(raw.get("taxAmount"), region),
            discount=_optional_money(raw.get("discount"), region),
            category=normalize_category(raw.get("category")),
            tax_rate=_optional_number(raw.get("taxRate"), region),
            integrity_score=_optional_number(raw.get("integrityScore"), region),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "merchantName": self.merchant_name,
            "date": self.date,
            "currency": self.currency,
            "items": [
                {
                    "name": i.name,
                    "quantity": i.quantity,
                    "unitPrice": i.unit_price,
                    "totalPrice": i.total_price,
                }
                for i in self.items
            ],
            "total": self.total,
            "category": self.category,
        }
        for key, value in (
            ("taxAmount", self.tax_amount),
            ("discount", self.discount),
            ("taxRate", self.tax_rate),
            ("integrityScore", self.integrity_score),
        ):
            if value is not None:
                data[key] = value
        return data


@dataclass
class ReceiptRecord:
    """A stored purchase transaction."""

    id: str
    user_id: str
    created_at: str | datetime
    total_amount: float | None = None
    currency: str = "USD"
    category: str = DEFAULT_CATEGORY
    merchant_name: str | None = None
    transaction_date: str | date | None = None
    tax_amount: float | None = None
    items: list[LineItem] = field(default_factory=list)
    raw_ai_output: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        self.category = normalize_category(self.category)


def _number(value: Any, region: str | None, default: float) -> float:
    parsed = parse_number(value, region)
    return default if math.isnan(parsed) else parsed


def _optional_number(value: Any, region: str | None) -> float | None:
    parsed = parse_number(value, region)
    return None if math.isnan(parsed) else parsed


def _money(value: Any, region: str | None) -> float:
    parsed = parse_monetary_value(value, region)
    return 0.0 if math.isnan(parsed) else parsed


def _optional_money(value: Any, region: str | None) -> float | None:
    parsed = parse_monetary_value(value, region)
    return None if math.isnan(parsed) else parsed
