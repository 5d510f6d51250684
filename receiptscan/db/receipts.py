"""Receipt store CRUD operations."""

from __future__ import annotations

import json
import math
import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from ..dates import DATE_MODES, last_n_days_keys, parse_timestamp, to_day_key
from ..models import LineItem, ReceiptData, ReceiptRecord
from .schema import ensure_schema

# Day expression per date mode; matches receipt_day_key() in dates.py
_DAY_EXPR: dict[str, str] = {
    "transaction": "date(COALESCE(transaction_date, created_at))",
    "created": "date(created_at)",
}

_ORDER_EXPR: dict[str, str] = {
    "transaction": "COALESCE(transaction_date, created_at)",
    "created": "created_at",
}


@dataclass
class ReceiptFilters:
    category: str | None = None
    search_query: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    date_mode: str = "transaction"


@dataclass
class ReceiptPage:
    data: list[ReceiptRecord] = field(default_factory=list)
    count: int = 0
    page: int = 1
    page_size: int = 20
    has_more: bool = False


def record_from_extraction(
    data: ReceiptData,
    user_id: str,
    *,
    now: datetime | None = None,
    record_id: str | None = None,
) -> ReceiptRecord:
    """Build a ReceiptRecord from an adopted extraction result."""
    return ReceiptRecord(
        id=record_id or uuid.uuid4().hex,
        user_id=user_id,
        created_at=now or datetime.now(),
        merchant_name=data.merchant_name or None,
        category=data.category,
        total_amount=data.total,
        currency=data.currency or "USD",
        transaction_date=to_day_key(data.date),
        tax_amount=data.tax_amount,
        items=list(data.items),
        raw_ai_output=data.to_dict(),
    )


def _local_timestamp(value: str | datetime) -> str:
    """Normalize a timestamp to naive local ISO so SQL date() sees the local day."""
    if isinstance(value, str):
        value = parse_timestamp(value)
    if value.tzinfo is not None:
        value = value.astimezone().replace(tzinfo=None)
    return value.isoformat(timespec="seconds")


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _check_date_mode(date_mode: str) -> None:
    if date_mode not in DATE_MODES:
        raise ValueError(
            f"Unknown date mode: {date_mode!r} (expected one of {', '.join(DATE_MODES)})"
        )


class ReceiptStore:
    """Manages the receipts and receipt_items tables."""

    def __init__(self, db_path: str | Path = "~/.config/receiptscan/receipts.db") -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = ensure_schema(self._db_path)
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def create(self, record: ReceiptRecord) -> str:
        """Insert a receipt with its line items.

        Raises:
            ValueError: If the total is NaN or negative.

        Returns:
            The receipt ID.
        """
        conn = self._get_conn()
        with conn:
            self._insert(conn, record)
        return record.id

    def create_batch(self, records: list[ReceiptRecord]) -> list[str]:
        """Insert several receipts in one transaction (all or nothing)."""
        conn = self._get_conn()
        with conn:
            for record in records:
                self._insert(conn, record)
        return [r.id for r in records]

    def _insert(self, conn: sqlite3.Connection, record: ReceiptRecord) -> None:
        total = record.total_amount
        if total is not None and (math.isnan(total) or total < 0):
            raise ValueError(
                f"Receipt {record.id} has an invalid total amount: {total!r}"
            )

        conn.execute(
            """INSERT INTO receipts
               (id, user_id, merchant_name, category, total_amount, currency,
                transaction_date, created_at, tax_amount, raw_ai_output)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                record.id,
                record.user_id,
                record.merchant_name,
                record.category,
                total,
                record.currency,
                to_day_key(record.transaction_date),
                _local_timestamp(record.created_at),
                record.tax_amount,
                json.dumps(record.raw_ai_output, ensure_ascii=False)
                if record.raw_ai_output is not None else None,
            ),
        )
        conn.executemany(
            """INSERT INTO receipt_items
               (receipt_id, name, quantity, unit_price, total_price)
               VALUES (?, ?, ?, ?, ?)""",
            [
                (record.id, i.name, i.quantity, i.unit_price, i.total_price)
                for i in record.items
            ],
        )

    def get(self, receipt_id: str) -> ReceiptRecord | None:
        """Return a receipt with its items, or None."""
        conn = self._get_conn()
        row = conn.execute(
            "SELECT * FROM receipts WHERE id = ?", (receipt_id,)
        ).fetchone()
        if row is None:
            return None
        return self._to_records([row])[0]

    def get_by_user(
        self,
        user_id: str,
        page: int = 1,
        page_size: int = 20,
        filters: ReceiptFilters | None = None,
    ) -> ReceiptPage:
        """Return one page of a user's receipts, newest first."""
        filters = filters or ReceiptFilters()
        _check_date_mode(filters.date_mode)
        page = max(page, 1)
        offset = (page - 1) * page_size

        where = ["user_id = ?"]
        params: list[Any] = [user_id]

        if filters.category and filters.category != "All":
            where.append("category = ?")
            params.append(filters.category)

        if filters.search_query:
            where.append("merchant_name LIKE ? ESCAPE '\\'")
            params.append(f"%{_escape_like(filters.search_query)}%")

        if filters.start_date:
            start = to_day_key(filters.start_date)
            end = to_day_key(filters.end_date or filters.start_date)
            if start is None or end is None:
                raise ValueError(
                    f"Invalid date range: {filters.start_date!r} .. {filters.end_date!r}"
                )
            day_expr = _DAY_EXPR[filters.date_mode]
            where.append(f"{day_expr} BETWEEN ? AND ?")
            params.extend([start, end])

        clause = " AND ".join(where)
        conn = self._get_conn()
        count = conn.execute(
            f"SELECT COUNT(*) FROM receipts WHERE {clause}", params
        ).fetchone()[0]
        rows = conn.execute(
            f"""SELECT * FROM receipts WHERE {clause}
                ORDER BY {_ORDER_EXPR[filters.date_mode]} DESC
                LIMIT ? OFFSET ?""",
            [*params, page_size, offset],
        ).fetchall()

        return ReceiptPage(
            data=self._to_records(rows),
            count=count,
            page=page,
            page_size=page_size,
            has_more=count > offset + page_size,
        )

    def get_recent(
        self,
        user_id: str,
        days: int = 7,
        date_mode: str = "created",
        *,
        now: datetime | None = None,
    ) -> list[ReceiptRecord]:
        """Return the user's receipts within the last N days, newest first."""
        _check_date_mode(date_mode)
        keys = last_n_days_keys(days, now)
        if not keys:
            return []

        conn = self._get_conn()
        rows = conn.execute(
            f"""SELECT * FROM receipts
                WHERE user_id = ? AND {_DAY_EXPR[date_mode]} BETWEEN ? AND ?
                ORDER BY {_ORDER_EXPR[date_mode]} DESC""",
            (user_id, keys[0], keys[-1]),
        ).fetchall()
        return self._to_records(rows)

    def delete(self, receipt_id: str) -> bool:
        """Delete a receipt and its items. Returns True if a row was removed."""
        conn = self._get_conn()
        with conn:
            cur = conn.execute("DELETE FROM receipts WHERE id = ?", (receipt_id,))
        return cur.rowcount > 0

    def _to_records(self, rows: list[sqlite3.Row]) -> list[ReceiptRecord]:
        if not rows:
            return []
        conn = self._get_conn()
        ids = [row["id"] for row in rows]
        placeholders = ", ".join("?" for _ in ids)
        items: dict[str, list[LineItem]] = {}
        for item in conn.execute(
            f"""SELECT * FROM receipt_items
                WHERE receipt_id IN ({placeholders}) ORDER BY id""",
            ids,
        ):
            items.setdefault(item["receipt_id"], []).append(
                LineItem(
                    name=item["name"],
                    quantity=item["quantity"],
                    unit_price=item["unit_price"],
                    total_price=item["total_price"],
                )
            )

        return [
            ReceiptRecord(
                id=row["id"],
                user_id=row["user_id"],
                created_at=row["created_at"],
                total_amount=row["total_amount"],
                currency=row["currency"],
                category=row["category"],
                merchant_name=row["merchant_name"],
                transaction_date=row["transaction_date"],
                tax_amount=row["tax_amount"],
                items=items.get(row["id"], []),
                raw_ai_output=json.loads(row["raw_ai_output"])
                if row["raw_ai_output"] else None,
            )
            for row in rows
        ]
