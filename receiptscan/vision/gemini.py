"""Gemini API backend for receipt extraction."""

from __future__ import annotations

from ..models import ReceiptData
from . import ExtractionBackend, ImagePayload, build_prompt, parse_receipt_response


class GeminiExtractionBackend(ExtractionBackend):
    """Extract receipts using Google Gemini's vision capability."""

    def __init__(self, api_key: str = "", model: str = "gemini-2.5-flash") -> None:
        self._api_key = api_key
        self._model = model

    async def extract_receipt(
        self, payload: ImagePayload, region: str | None = None
    ) -> ReceiptData:
        if not self._api_key:
            raise ValueError(
                "Gemini API key is not set. "
                "Check the config file or the GEMINI_API_KEY environment variable."
            )

        try:
            import google.generativeai as genai
        except ImportError:
            raise ImportError(
                "google-generativeai SDK is required: pip install google-generativeai"
            ) from None

        genai.configure(api_key=self._api_key)
        model = genai.GenerativeModel(
            self._model,
            generation_config={"response_mime_type": "application/json"},
        )

        data = await payload.read_bytes()
        parts = [
            {"mime_type": payload.media_type, "data": data},
            build_prompt(region),
        ]

        response = await model.generate_content_async(parts)
        return parse_receipt_response(response.text, region)
