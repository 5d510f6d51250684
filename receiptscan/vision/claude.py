"""Claude API backend for receipt extraction."""

from __future__ import annotations

from ..models import ReceiptData
from . import ExtractionBackend, ImagePayload, build_prompt, parse_receipt_response


class ClaudeExtractionBackend(ExtractionBackend):
    """Extract receipts using Claude's vision capability."""

    def __init__(self, api_key: str = "", model: str = "claude-sonnet-4-5-20250929") -> None:
        self._api_key = api_key
        self._model = model

    async def extract_receipt(
        self, payload: ImagePayload, region: str | None = None
    ) -> ReceiptData:
        if not self._api_key:
            raise ValueError(
                "Anthropic API key is not set. "
                "Check the config file or the ANTHROPIC_API_KEY environment variable."
            )

        try:
            import anthropic
        except ImportError:
            raise ImportError(
                "anthropic SDK is required: pip install anthropic"
            ) from None

        content = [
            {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": payload.media_type,
                    "data": await payload.encode(),
                },
            },
            {"type": "text", "text": build_prompt(region)},
        ]

        client = anthropic.AsyncAnthropic(api_key=self._api_key)
        response = await client.messages.create(
            model=self._model,
            max_tokens=4096,
            messages=[{"role": "user", "content": content}],
        )

        return parse_receipt_response(response.content[0].text, region)
