"""Batch receipt analysis with integrity-based retry.

Each submitted image becomes an ``AnalysisItem`` that starts out
``PROCESSING`` and moves exactly once to ``COMPLETED`` or ``ERROR``.
Items are processed as independent asyncio tasks; observers follow
progress by subscribing to the published tuple of item snapshots.

All state changes run on the event loop thread and replace whole items,
so concurrent completions never clobber each other.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import uuid
from dataclasses import dataclass, replace
from typing import Callable, Iterable, Sequence

from .integrity import INTEGRITY_THRESHOLD, is_integrity_acceptable
from .models import ReceiptData
from .vision import ExtractionBackend, ImagePayload

logger = logging.getLogger(__name__)

Subscriber = Callable[[tuple["AnalysisItem", ...]], None]


class AnalysisStatus(str, enum.Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class AnalysisItem:
    """Snapshot of one image's progress through the pipeline."""

    id: str
    source: str
    status: AnalysisStatus = AnalysisStatus.PROCESSING
    data: ReceiptData | None = None
    error: str | None = None
    integrity_score: float | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status is not AnalysisStatus.PROCESSING


class ReceiptScanner:
    """Runs extraction for batches of images and publishes item snapshots."""

    def __init__(
        self,
        backend: ExtractionBackend,
        *,
        region: str | None = "en-US",
        integrity_threshold: float = INTEGRITY_THRESHOLD,
    ) -> None:
        self._backend = backend
        self.region = region
        self._threshold = integrity_threshold
        self._items: tuple[AnalysisItem, ...] = ()
        self._subscribers: list[Subscriber] = []
        self._tasks: set[asyncio.Task] = set()

    @property
    def items(self) -> tuple[AnalysisItem, ...]:
        return self._items

    @property
    def is_scanning(self) -> bool:
        return any(not item.is_terminal for item in self._items)

    def get(self, item_id: str) -> AnalysisItem | None:
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    def completed_data(self) -> list[ReceiptData]:
        """Adopted extraction results of all completed items."""
        return [
            item.data for item in self._items
            if item.status is AnalysisStatus.COMPLETED and item.data is not None
        ]

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback for item list changes.

        Returns:
            A function that removes the callback.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def process_batch(
        self, images: Iterable[ImagePayload | str]
    ) -> list[AnalysisItem]:
        """Register images as PROCESSING and start one task per image.

        Must be called from a running event loop. Returns immediately
        with the registered items; progress is observed via subscribe().
        """
        payloads = [
            img if isinstance(img, ImagePayload) else ImagePayload(source=str(img))
            for img in images
        ]
        if not payloads:
            return []

        loop = asyncio.get_running_loop()
        new_items = [
            AnalysisItem(id=uuid.uuid4().hex, source=p.source) for p in payloads
        ]
        self._publish(self._items + tuple(new_items))

        for item, payload in zip(new_items, payloads):
            task = loop.create_task(self._process_item(item.id, payload))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        return new_items

    def reset(self) -> None:
        """Clear all items. In-flight tasks keep running but are dropped."""
        self._publish(())

    async def wait_idle(self) -> None:
        """Wait until every in-flight item task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _process_item(self, item_id: str, payload: ImagePayload) -> None:
        region = self.region
        try:
            data = await self._backend.extract_receipt(payload, region)
            data = await self._maybe_retry(payload, region, data)
        except Exception as e:
            logger.exception("Failed to process item %s (%s)", item_id, payload.source)
            self._update(
                item_id,
                status=AnalysisStatus.ERROR,
                error=str(e) or "Analysis failed",
            )
            return

        self._update(
            item_id,
            status=AnalysisStatus.COMPLETED,
            data=data,
            integrity_score=data.integrity_score,
        )

    async def _maybe_retry(
        self, payload: ImagePayload, region: str | None, data: ReceiptData
    ) -> ReceiptData:
        """Run a single retry when the first result scores below threshold."""
        score = data.integrity_score
        if score is None or is_integrity_acceptable(score, self._threshold):
            return data

        logger.info(
            "Low integrity (%s) for %s, retrying", score, data.merchant_name or payload.source
        )
        try:
            retried = await self._backend.extract_receipt(payload, region)
        except Exception:
            logger.warning("Retry failed for %s, keeping first result", payload.source,
                           exc_info=True)
            return data

        if (retried.integrity_score or 0) > (score or 0):
            logger.info("Retry improved integrity: %s -> %s", score, retried.integrity_score)
            return retried
        return data

    def _update(self, item_id: str, **changes) -> None:
        # The item may have been cleared by reset() while its task ran
        if self.get(item_id) is None:
            return
        self._publish(tuple(
            replace(item, **changes) if item.id == item_id else item
            for item in self._items
        ))

    def _publish(self, items: Sequence[AnalysisItem]) -> None:
        self._items = tuple(items)
        snapshot = self._items
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Scanner subscriber %r failed", callback)
