"""Region-aware parsing of numbers as they are printed on receipts.

Receipts from Chile or Brazil write ten thousand as ``10.000`` while
receipts from the US or Mexico write ``10,000``. The parser picks the
separator convention from the region tag and falls back to a heuristic
for regions it does not know.
"""

from __future__ import annotations

import math
import re

DOT_THOUSANDS = "dot_thousands"
DOT_DECIMAL = "dot_decimal"

# Dot groups thousands, comma marks decimals
_DOT_THOUSANDS_REGIONS: tuple[str, ...] = (
    "es-CL",
    "es-AR",
    "es-CO",
    "es-UY",
    "pt-BR",
    "es-PY",
)

# Dot marks decimals, comma groups thousands
_DOT_DECIMAL_REGIONS: tuple[str, ...] = (
    "en-US",
    "en",
    "es-MX",
    "es-PE",
    "es-PA",
    "es-EC",
    "es-SV",
)

_STRIP_RE = re.compile(r"[^\d.,-]")
_FLOAT_PREFIX_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)")
_AFTER_DOT_RE = re.compile(r"\.(\d*)")


def separator_convention(region: str | None) -> str | None:
    """Classify a region tag by prefix.

    Returns:
        ``DOT_THOUSANDS``, ``DOT_DECIMAL`` or None when the region matches
        neither list.
    """
    if not region:
        return None
    if any(region.startswith(r) for r in _DOT_THOUSANDS_REGIONS):
        return DOT_THOUSANDS
    if any(region.startswith(r) for r in _DOT_DECIMAL_REGIONS):
        return DOT_DECIMAL
    return None


def parse_number(raw: str | int | float | None, region: str | None) -> float:
    """Parse a raw receipt number using the region's separator convention.

    Currency symbols and whitespace are dropped before parsing. Never raises:
    empty or unparseable input gives ``nan``.
    """
    if raw is None or raw == "":
        return math.nan
    if isinstance(raw, bool):
        return math.nan
    if isinstance(raw, (int, float)):
        return float(raw)

    text = _STRIP_RE.sub("", str(raw).strip())

    convention = separator_convention(region)
    if convention == DOT_THOUSANDS:
        text = text.replace(".", "").replace(",", ".", 1)
    elif convention == DOT_DECIMAL:
        text = text.replace(",", "")
    else:
        text = _normalize_ambiguous(text)

    return _parse_float_prefix(text)


def parse_monetary_value(raw: str | int | float | None, region: str | None) -> float:
    """Parse like parse_number and round to cents (half away from zero)."""
    value = parse_number(raw, region)
    if math.isnan(value):
        return math.nan
    if math.isinf(value):
        return value
    scaled = math.floor(abs(value) * 100 + 0.5) / 100
    return math.copysign(scaled, value) if scaled else 0.0


def _normalize_ambiguous(text: str) -> str:
    has_comma = "," in text
    has_dot = "." in text

    if has_comma and has_dot:
        # Three digits after the dot means the dot groups thousands
        match = _AFTER_DOT_RE.search(text)
        if match and len(match.group(1)) == 3:
            return text.replace(".", "").replace(",", ".", 1)
        return text.replace(",", "")
    if has_comma:
        return text.replace(",", ".", 1)
    return text


def _parse_float_prefix(text: str) -> float:
    """Parse the longest leading float, ignoring trailing garbage."""
    match = _FLOAT_PREFIX_RE.match(text)
    if match is None:
        return math.nan
    return float(match.group(0))
