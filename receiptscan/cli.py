"""CLI entry point for receiptscan."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import math
import sys
from datetime import date

from dotenv import load_dotenv

from .config import ScanConfig, load_config
from .currency import format_price
from .dates import group_by_day
from .db import PreferencesDB, ReceiptFilters, ReceiptStore, record_from_extraction
from .scanner import AnalysisItem, AnalysisStatus, ReceiptScanner
from .stats import calculate_dashboard_stats, get_category_breakdown
from .vision import create_backend


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="receiptscan",
        description="Extract purchase receipts with AI and summarize spending",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="Path to the configuration file (TOML)",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )

    sub = parser.add_subparsers(dest="command")

    # scan
    scan_parser = sub.add_parser("scan", help="Analyze receipt images")
    scan_parser.add_argument("images", nargs="+", help="Receipt image files")
    scan_parser.add_argument("--region", type=str, default=None, help="Region tag, e.g. es-CL")
    scan_parser.add_argument("--json", action="store_true", help="Output as JSON")
    scan_parser.add_argument(
        "--save", action="store_true", help="Store completed receipts"
    )

    # dashboard
    dash_parser = sub.add_parser("dashboard", help="Show spending by day")
    dash_parser.add_argument(
        "--monthly", action="store_true", help="Month-to-date view instead of weekly"
    )
    dash_parser.add_argument("--days", type=int, default=None, help="Window size in days")
    dash_parser.add_argument(
        "--date-mode", choices=["transaction", "created"], default=None,
        help="Group by transaction date or creation time",
    )
    dash_parser.add_argument("--region", type=str, default=None, help="Region tag for amounts")
    dash_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # receipts
    list_parser = sub.add_parser("receipts", help="List stored receipts")
    list_parser.add_argument("--category", type=str, default=None)
    list_parser.add_argument("--search", type=str, default=None, help="Merchant name search")
    list_parser.add_argument("--start", type=str, default=None, help="Start date (YYYY-MM-DD)")
    list_parser.add_argument("--end", type=str, default=None, help="End date (YYYY-MM-DD)")
    list_parser.add_argument("--page", type=int, default=1)
    list_parser.add_argument(
        "--date-mode", choices=["transaction", "created"], default="transaction"
    )

    # delete
    delete_parser = sub.add_parser("delete", help="Delete a stored receipt")
    delete_parser.add_argument("receipt_id", help="Receipt ID")

    # region
    region_parser = sub.add_parser("region", help="Show or set the preferred region")
    region_parser.add_argument("value", nargs="?", default=None, help="Region tag to store")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    load_dotenv()
    config = load_config(args.config)

    match args.command:
        case "scan":
            asyncio.run(_cmd_scan(config, args))
        case "dashboard":
            _cmd_dashboard(config, args)
        case "receipts":
            _cmd_receipts(config, args)
        case "delete":
            _cmd_delete(config, args)
        case "region":
            _cmd_region(config, args)


def _resolve_region(config: ScanConfig, override: str | None) -> str:
    if override:
        return override
    prefs = PreferencesDB(config.database.path)
    try:
        return prefs.get_region() or config.locale.region
    finally:
        prefs.close()


def _print_item(item: AnalysisItem) -> None:
    if item.status is AnalysisStatus.COMPLETED and item.data is not None:
        print(
            f"  ✓ {item.source}: {item.data.merchant_name} "
            f"{item.data.total} {item.data.currency} "
            f"(integrity {item.integrity_score})"
        )
    elif item.status is AnalysisStatus.ERROR:
        print(f"  ✗ {item.source}: {item.error}", file=sys.stderr)


async def _cmd_scan(config: ScanConfig, args) -> None:
    region = _resolve_region(config, args.region)
    backend = create_backend(config)
    scanner = ReceiptScanner(
        backend,
        region=region,
        integrity_threshold=config.scanner.integrity_threshold,
    )

    reported: set[str] = set()

    def on_change(items: tuple[AnalysisItem, ...]) -> None:
        for item in items:
            if item.is_terminal and item.id not in reported:
                reported.add(item.id)
                if not args.json:
                    _print_item(item)

    scanner.subscribe(on_change)
    if not args.json:
        print(f"Analyzing {len(args.images)} receipt(s)...")
    scanner.process_batch(args.images)
    await scanner.wait_idle()

    if args.json:
        data = [
            {
                "source": item.source,
                "status": item.status.value,
                "data": item.data.to_dict() if item.data else None,
                "error": item.error,
            }
            for item in scanner.items
        ]
        print(json.dumps(data, ensure_ascii=False, indent=2))

    if args.save:
        results = []
        for item in scanner.items:
            if item.status is not AnalysisStatus.COMPLETED or item.data is None:
                continue
            total = item.data.total
            if total is None or math.isnan(total) or total < 0:
                print(f"  Skipped {item.source}: invalid total {total!r}", file=sys.stderr)
                continue
            results.append(item.data)
        if not results:
            return
        store = ReceiptStore(config.database.path)
        try:
            ids = store.create_batch(
                [record_from_extraction(d, config.dashboard.user_id) for d in results]
            )
        finally:
            store.close()
        if not args.json:
            print(f"Saved {len(ids)} receipt(s).")


def _cmd_dashboard(config: ScanConfig, args) -> None:
    region = _resolve_region(config, args.region)
    date_mode = args.date_mode or config.dashboard.date_mode
    view_mode = "monthly" if args.monthly else "weekly"

    if args.days:
        window = args.days
    elif args.monthly:
        window = date.today().day
    else:
        window = config.dashboard.window_days

    store = ReceiptStore(config.database.path)
    try:
        # The previous period is needed for trends
        receipts = store.get_recent(
            config.dashboard.user_id, days=max(62, window), date_mode=date_mode
        )
    finally:
        store.close()

    stats = calculate_dashboard_stats(receipts, view_mode, date_mode)
    buckets = group_by_day(receipts, window, config.locale.language, date_mode)
    categories = get_category_breakdown(buckets)

    if args.json:
        data = {
            "total_spent": stats.total_spent,
            "items_processed": stats.items_processed,
            "new_scans_today": stats.new_scans_today,
            "spend_trend": stats.spend_trend,
            "count_trend": stats.count_trend,
            "days": [
                {
                    "date": b.date_key,
                    "day": b.day_name,
                    "count": b.count,
                    "total_spent": b.total_spent,
                    "is_today": b.is_today,
                }
                for b in buckets
            ],
            "categories": [
                {"category": c.category, "amount": c.amount, "percentage": c.percentage}
                for c in categories
            ],
        }
        print(json.dumps(data, ensure_ascii=False, indent=2))
        return

    trend = f"{stats.spend_trend:+.1f}%" if stats.spend_trend is not None else "n/a"
    print(f"Total spent ({view_mode}): {format_price(stats.total_spent, region)}  [{trend}]")
    print(f"Receipts: {stats.items_processed}  (today: {stats.new_scans_today})")
    print()
    peak = max((b.total_spent for b in buckets), default=0) or 1
    for b in buckets:
        bar = "█" * int(b.total_spent / peak * 20)
        marker = " ←" if b.is_today else ""
        print(f"  {b.date_key} {b.day_name:<5} {format_price(b.total_spent, region):>14} {bar}{marker}")
    if categories:
        print()
        for c in categories:
            print(f"  {c.category:<14} {format_price(c.amount, region):>14} {c.percentage:5.1f}%")


def _cmd_receipts(config: ScanConfig, args) -> None:
    region = _resolve_region(config, None)
    filters = ReceiptFilters(
        category=args.category,
        search_query=args.search,
        start_date=args.start,
        end_date=args.end,
        date_mode=args.date_mode,
    )
    store = ReceiptStore(config.database.path)
    try:
        page = store.get_by_user(config.dashboard.user_id, args.page, 20, filters)
    finally:
        store.close()

    if not page.data:
        print("No receipts found.")
        return
    print(f"Receipts {page.count} (page {page.page}):")
    for r in page.data:
        day = r.transaction_date or str(r.created_at)[:10]
        amount = format_price(r.total_amount, region, r.currency)
        print(f"  {r.id}  {day}  {r.merchant_name or '-':<24} {amount:>14}  [{r.category}]")
    if page.has_more:
        print(f"  ... more on page {page.page + 1}")


def _cmd_delete(config: ScanConfig, args) -> None:
    store = ReceiptStore(config.database.path)
    try:
        deleted = store.delete(args.receipt_id)
    finally:
        store.close()
    if not deleted:
        print(f"Receipt not found: {args.receipt_id}", file=sys.stderr)
        sys.exit(1)
    print(f"Deleted {args.receipt_id}")


def _cmd_region(config: ScanConfig, args) -> None:
    prefs = PreferencesDB(config.database.path)
    try:
        if args.value:
            prefs.set_region(args.value)
            print(f"Region set to {args.value}")
        else:
            print(prefs.get_region() or config.locale.region)
    finally:
        prefs.close()


if __name__ == "__main__":
    main()
