"""Extraction backend base class, image payloads, response parsing and factory."""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import mimetypes
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from ..integrity import calculate_receipt_integrity
from ..models import ReceiptData

if TYPE_CHECKING:
    from ..config import ScanConfig

REQUIRED_FIELDS: tuple[str, ...] = ("merchantName", "items", "total", "currency")

_PROMPT = """\
Analyze this receipt carefully. Extract the merchant name, date, all line items \
(name, quantity, unit price, total price), tax details (look for IVA if present), \
the tax rate as a decimal (e.g. 0.19 for 19%), aggregate all discounts into a \
single value, and the final total. Be very precise with numbers.

Return only a JSON object of this shape (no other text):
{
  "merchantName": "string",
  "date": "YYYY-MM-DD",
  "currency": "3-letter ISO code, e.g. CLP",
  "items": [{"name": "string", "quantity": 1, "unitPrice": 0, "totalPrice": 0}],
  "taxAmount": 0,
  "discount": 0,
  "total": 0,
  "taxRate": 0.19,
  "category": "one of: Food, Dining, Transport, Utilities, Entertainment, \
Shopping, Groceries, Gas, Health, Other"
}

Number parsing:
- In Chile, Argentina, Colombia, Uruguay, Brazil and Paraguay the dot (.) groups \
thousands and the comma (,) marks decimals (10.000 is ten thousand).
- In the USA, Mexico, Peru, Panama, Ecuador and El Salvador the dot marks \
decimals and the comma groups thousands (10.50 is ten and a half).
- If the currency is ambiguous, use the magnitude of common items to decide.
Return every amount as a plain JSON number (2500 or 10.50).

Rules for items:
1. If an item is sold by weight (KG, G), set its quantity to 1.
2. Do not include discounts (negative values) in the items array.
3. Sum all discounts into the top-level "discount" field as a positive number.
"""


class ExtractionError(RuntimeError):
    """The extraction service returned no usable receipt."""


def build_prompt(region: str | None = None) -> str:
    """Extraction instruction, with a hint about the user's region if known."""
    if region:
        return f"{_PROMPT}\nThe user's region is {region}; prefer its number format.\n"
    return _PROMPT


@dataclass(frozen=True)
class ImagePayload:
    """An image to analyze.

    ``source`` is a file path or URI, or just a label when the image bytes
    are given in ``data``. The payload is only read and encoded when it is
    handed to a backend; a payload that already carries base64 data is
    passed through as-is.
    """

    source: str
    data: bytes | None = None
    base64_data: str | None = None
    mime_type: str | None = None

    @property
    def media_type(self) -> str:
        if self.mime_type:
            return self.mime_type
        if self.base64_data and self.base64_data.startswith("data:"):
            return self.base64_data[5:].split(";", 1)[0] or "image/jpeg"
        return mimetypes.guess_type(self.source)[0] or "image/jpeg"

    async def encode(self) -> str:
        """Return the image as base64 text, reading the file if needed."""
        if self.base64_data:
            # Strip a "data:image/jpeg;base64," prefix
            if self.base64_data.startswith("data:"):
                return self.base64_data.split(",", 1)[-1]
            return self.base64_data
        if self.data is not None:
            if not self.data:
                raise ExtractionError(f"Empty image data: {self.source}")
            return base64.standard_b64encode(self.data).decode()
        data = await asyncio.to_thread(Path(self.source).expanduser().read_bytes)
        if not data:
            raise ExtractionError(f"Could not read image data: {self.source}")
        return base64.standard_b64encode(data).decode()

    async def read_bytes(self) -> bytes:
        """Return the raw image bytes."""
        if self.data and not self.base64_data:
            return self.data
        encoded = await self.encode()
        try:
            return base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ExtractionError(f"Invalid base64 image data: {self.source}") from e


class ExtractionBackend(ABC):
    """Abstract base for structured receipt extraction from an image."""

    @abstractmethod
    async def extract_receipt(
        self, payload: ImagePayload, region: str | None = None
    ) -> ReceiptData:
        """Extract one receipt.

        Raises on service failure or when the response lacks the required
        fields. The returned data carries an integrity score.
        """
        ...


def parse_receipt_response(text: str | None, region: str | None = None) -> ReceiptData:
    """Parse the JSON object returned by a backend and score it."""
    if not text:
        raise ExtractionError("No data returned from receipt analysis")

    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [l for l in lines[1:] if not l.strip().startswith("```")]
        cleaned = "\n".join(lines)

    try:
        raw = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ExtractionError("Failed to process receipt data") from e

    if not isinstance(raw, dict):
        raise ExtractionError("Failed to process receipt data")
    missing = [f for f in REQUIRED_FIELDS if raw.get(f) is None]
    if missing:
        raise ExtractionError(
            f"Receipt analysis is missing fields: {', '.join(missing)}"
        )

    data = ReceiptData.from_dict(raw, region)
    data.integrity_score = calculate_receipt_integrity(data)
    return data


def create_backend(config: ScanConfig) -> ExtractionBackend:
    """Create an extraction backend based on configuration."""
    backend_name = config.vision.backend

    match backend_name:
        case "gemini":
            from .gemini import GeminiExtractionBackend

            return GeminiExtractionBackend(
                api_key=config.vision.gemini.api_key,
                model=config.vision.gemini.model,
            )
        case "claude":
            from .claude import ClaudeExtractionBackend

            return ClaudeExtractionBackend(
                api_key=config.vision.claude.api_key,
                model=config.vision.claude.model,
            )
        case _:
            raise ValueError(
                f"Unknown extraction backend: {backend_name!r} "
                f"(choose gemini or claude)"
            )


__all__ = [
    "ExtractionBackend",
    "ExtractionError",
    "ImagePayload",
    "build_prompt",
    "create_backend",
    "parse_receipt_response",
]
