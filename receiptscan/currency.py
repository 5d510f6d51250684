"""Region-aware price formatting."""

from __future__ import annotations

import math

from .numbers import DOT_THOUSANDS, separator_convention

REGION_CURRENCIES: dict[str, str] = {
    "en-US": "USD",
    "es-CL": "CLP",
    "es-MX": "MXN",
    "es-AR": "ARS",
    "es-CO": "COP",
    "es-PE": "PEN",
}

CURRENCY_SYMBOLS: dict[str, str] = {
    "USD": "$",
    "CLP": "$",
    "MXN": "$",
    "ARS": "$",
    "COP": "$",
    "PEN": "S/",
}

DEFAULT_CURRENCY = "USD"


def currency_for_region(region: str | None) -> str:
    """Return the default currency code for a region (USD if unknown)."""
    return REGION_CURRENCIES.get(region or "", DEFAULT_CURRENCY)


def format_price(
    amount: float | None,
    region: str = "en-US",
    currency: str | None = None,
) -> str:
    """Format an amount with the currency symbol and the region's separators.

    Whole amounts are shown without decimals, everything else with two.
    Missing or NaN amounts render as zero.
    """
    code = currency or currency_for_region(region)
    symbol = CURRENCY_SYMBOLS.get(code, "$")

    if amount is None or math.isnan(amount) or math.isinf(amount):
        amount = 0.0

    sign = "-" if amount < 0 else ""
    value = abs(amount)
    cents = int(math.floor(value * 100 + 0.5))
    whole, frac = divmod(cents, 100)

    grouped = f"{whole:,}"
    if separator_convention(region) == DOT_THOUSANDS:
        grouped = grouped.replace(",", ".")
        decimal_sep = ","
    else:
        decimal_sep = "."

    text = grouped if frac == 0 else f"{grouped}{decimal_sep}{frac:02d}"
    return f"{sign}{symbol}{text}"
