"""Tests for the batch analysis pipeline (mocked extraction backend)."""

import asyncio

import pytest

from receiptscan.models import ReceiptData
from receiptscan.scanner import AnalysisItem, AnalysisStatus, ReceiptScanner
from receiptscan.vision import ExtractionBackend, ExtractionError, ImagePayload


def _data(merchant="LIDER", score=None, total=1000.0):
    return ReceiptData(
        merchant_name=merchant,
        date="2025-03-10",
        currency="CLP",
        total=total,
        integrity_score=score,
    )


class ScriptedBackend(ExtractionBackend):
    """Returns (or raises) scripted results per source, in call order."""

    def __init__(self, script: dict):
        self.script = {k: list(v) for k, v in script.items()}
        self.calls: list[tuple[str, str | None]] = []
        self.gates: dict[str, asyncio.Event] = {}

    async def extract_receipt(self, payload, region=None):
        self.calls.append((payload.source, region))
        gate = self.gates.get(payload.source)
        if gate is not None:
            await gate.wait()
        result = self.script[payload.source].pop(0)
        if isinstance(result, BaseException):
            raise result
        return result


def _calls_for(backend, source):
    return [c for c in backend.calls if c[0] == source]


class TestAnalysisItem:
    def test_defaults(self):
        item = AnalysisItem(id="1", source="a.jpg")
        assert item.status is AnalysisStatus.PROCESSING
        assert item.data is None
        assert item.error is None
        assert not item.is_terminal

    def test_frozen(self):
        item = AnalysisItem(id="1", source="a.jpg")
        with pytest.raises(AttributeError):
            item.status = AnalysisStatus.ERROR  # type: ignore[misc]


class TestProcessBatch:
    @pytest.mark.asyncio
    async def test_registers_processing_items_immediately(self):
        backend = ScriptedBackend({"a.jpg": [_data()], "b.jpg": [_data()]})
        scanner = ReceiptScanner(backend)

        items = scanner.process_batch(["a.jpg", "b.jpg"])

        assert [i.source for i in items] == ["a.jpg", "b.jpg"]
        assert all(i.status is AnalysisStatus.PROCESSING for i in scanner.items)
        assert scanner.is_scanning
        # nothing has run yet: the batch call does not await the items
        assert backend.calls == []

        await scanner.wait_idle()
        assert all(i.status is AnalysisStatus.COMPLETED for i in scanner.items)
        assert not scanner.is_scanning

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        scanner = ReceiptScanner(ScriptedBackend({}))
        assert scanner.process_batch([]) == []
        assert scanner.items == ()

    @pytest.mark.asyncio
    async def test_accepts_pre_encoded_payload(self):
        payload = ImagePayload(source="camera://1", base64_data="aGVsbG8=")
        backend = ScriptedBackend({"camera://1": [_data()]})
        scanner = ReceiptScanner(backend)

        scanner.process_batch([payload])
        await scanner.wait_idle()

        assert scanner.items[0].status is AnalysisStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_high_integrity_no_retry(self):
        backend = ScriptedBackend({"a.jpg": [_data(score=95)]})
        scanner = ReceiptScanner(backend)

        scanner.process_batch(["a.jpg"])
        await scanner.wait_idle()

        assert len(backend.calls) == 1
        item = scanner.items[0]
        assert item.status is AnalysisStatus.COMPLETED
        assert item.integrity_score == 95

    @pytest.mark.asyncio
    async def test_missing_score_no_retry(self):
        backend = ScriptedBackend({"a.jpg": [_data(score=None)]})
        scanner = ReceiptScanner(backend)

        scanner.process_batch(["a.jpg"])
        await scanner.wait_idle()

        assert len(backend.calls) == 1
        assert scanner.items[0].status is AnalysisStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_low_integrity_retry_adopts_better_result(self):
        first = _data(merchant="L1DER", score=40)
        second = _data(merchant="LIDER", score=90)
        backend = ScriptedBackend({"a.jpg": [first, second]})
        scanner = ReceiptScanner(backend)

        completions: list[AnalysisItem] = []

        def on_change(items):
            completions.extend(i for i in items if i.status is AnalysisStatus.COMPLETED)

        scanner.subscribe(on_change)
        scanner.process_batch(["a.jpg"])
        await scanner.wait_idle()

        item = scanner.items[0]
        assert item.status is AnalysisStatus.COMPLETED
        assert item.data == second
        assert item.integrity_score == 90
        assert len(backend.calls) == 2
        # completed exactly once: one publish carried the completed item
        assert len(completions) == 1

    @pytest.mark.asyncio
    async def test_retry_not_better_keeps_first(self):
        first = _data(merchant="FIRST", score=60)
        second = _data(merchant="SECOND", score=60)
        backend = ScriptedBackend({"a.jpg": [first, second]})
        scanner = ReceiptScanner(backend)

        scanner.process_batch(["a.jpg"])
        await scanner.wait_idle()

        assert scanner.items[0].data == first
        assert len(backend.calls) == 2

    @pytest.mark.asyncio
    async def test_single_retry_only(self):
        backend = ScriptedBackend({"a.jpg": [_data(score=10), _data(score=20)]})
        scanner = ReceiptScanner(backend)

        scanner.process_batch(["a.jpg"])
        await scanner.wait_idle()

        assert len(backend.calls) == 2
        item = scanner.items[0]
        assert item.status is AnalysisStatus.COMPLETED
        assert item.integrity_score == 20

    @pytest.mark.asyncio
    async def test_retry_failure_keeps_first_result(self):
        first = _data(score=50)
        backend = ScriptedBackend({"a.jpg": [first, ExtractionError("timeout")]})
        scanner = ReceiptScanner(backend)

        scanner.process_batch(["a.jpg"])
        await scanner.wait_idle()

        item = scanner.items[0]
        assert item.status is AnalysisStatus.COMPLETED
        assert item.data == first

    @pytest.mark.asyncio
    async def test_custom_threshold(self):
        backend = ScriptedBackend({"a.jpg": [_data(score=50)]})
        scanner = ReceiptScanner(backend, integrity_threshold=40)

        scanner.process_batch(["a.jpg"])
        await scanner.wait_idle()

        assert len(backend.calls) == 1

    @pytest.mark.asyncio
    async def test_failure_isolated_to_item(self):
        backend = ScriptedBackend({
            "bad.jpg": [ExtractionError("service down"), ExtractionError("service down")],
            "good.jpg": [_data(score=100)],
        })
        scanner = ReceiptScanner(backend)

        scanner.process_batch(["bad.jpg", "good.jpg"])
        await scanner.wait_idle()

        bad, good = scanner.items
        assert bad.status is AnalysisStatus.ERROR
        assert bad.error == "service down"
        assert bad.data is None
        assert good.status is AnalysisStatus.COMPLETED
        assert good.error is None

    @pytest.mark.asyncio
    async def test_error_without_message_gets_default(self):
        backend = ScriptedBackend({"a.jpg": [RuntimeError()]})
        scanner = ReceiptScanner(backend)

        scanner.process_batch(["a.jpg"])
        await scanner.wait_idle()

        assert scanner.items[0].error == "Analysis failed"

    @pytest.mark.asyncio
    async def test_unreadable_file_is_error(self, tmp_path):

        class ReadingBackend(ExtractionBackend):
            async def extract_receipt(self, payload, region=None):
                await payload.encode()
                return _data()

        scanner = ReceiptScanner(ReadingBackend())
        scanner.process_batch([str(tmp_path / "missing.jpg")])
        await scanner.wait_idle()

        item = scanner.items[0]
        assert item.status is AnalysisStatus.ERROR
        assert item.error

    @pytest.mark.asyncio
    async def test_slow_item_does_not_block_sibling(self):
        backend = ScriptedBackend({"slow.jpg": [_data()], "fast.jpg": [_data()]})
        backend.gates["slow.jpg"] = asyncio.Event()
        scanner = ReceiptScanner(backend)

        slow, fast = scanner.process_batch(["slow.jpg", "fast.jpg"])
        for _ in range(5):
            await asyncio.sleep(0)

        assert scanner.get(fast.id).status is AnalysisStatus.COMPLETED
        assert scanner.get(slow.id).status is AnalysisStatus.PROCESSING

        backend.gates["slow.jpg"].set()
        await scanner.wait_idle()
        assert scanner.get(slow.id).status is AnalysisStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_region_passed_to_backend(self):
        backend = ScriptedBackend({"a.jpg": [_data()], "b.jpg": [_data()]})
        scanner = ReceiptScanner(backend, region="es-CL")

        scanner.process_batch(["a.jpg"])
        await scanner.wait_idle()
        scanner.region = "en-US"
        scanner.process_batch(["b.jpg"])
        await scanner.wait_idle()

        assert backend.calls == [("a.jpg", "es-CL"), ("b.jpg", "en-US")]

    @pytest.mark.asyncio
    async def test_batches_accumulate(self):
        backend = ScriptedBackend({"a.jpg": [_data()], "b.jpg": [_data()]})
        scanner = ReceiptScanner(backend)

        scanner.process_batch(["a.jpg"])
        scanner.process_batch(["b.jpg"])
        await scanner.wait_idle()

        assert [i.source for i in scanner.items] == ["a.jpg", "b.jpg"]
        assert len(scanner.completed_data()) == 2


class TestReset:
    @pytest.mark.asyncio
    async def test_reset_clears_items(self):
        backend = ScriptedBackend({"a.jpg": [_data()]})
        scanner = ReceiptScanner(backend)
        scanner.process_batch(["a.jpg"])
        await scanner.wait_idle()

        scanner.reset()
        assert scanner.items == ()
        scanner.reset()
        assert scanner.items == ()

    @pytest.mark.asyncio
    async def test_pending_task_does_not_resurrect_items(self):
        backend = ScriptedBackend({"a.jpg": [_data(score=100)]})
        backend.gates["a.jpg"] = asyncio.Event()
        scanner = ReceiptScanner(backend)

        scanner.process_batch(["a.jpg"])
        await asyncio.sleep(0)
        scanner.reset()
        assert scanner.items == ()

        backend.gates["a.jpg"].set()
        await scanner.wait_idle()
        assert scanner.items == ()


class TestSubscribe:
    @pytest.mark.asyncio
    async def test_snapshots_published(self):
        backend = ScriptedBackend({"a.jpg": [_data()]})
        scanner = ReceiptScanner(backend)
        seen: list[tuple] = []
        scanner.subscribe(seen.append)

        scanner.process_batch(["a.jpg"])
        await scanner.wait_idle()

        assert [s[0].status for s in seen] == [
            AnalysisStatus.PROCESSING,
            AnalysisStatus.COMPLETED,
        ]
        # earlier snapshots are not mutated by later updates
        assert seen[0][0].data is None

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        backend = ScriptedBackend({"a.jpg": [_data()]})
        scanner = ReceiptScanner(backend)
        seen: list[tuple] = []
        unsubscribe = scanner.subscribe(seen.append)
        unsubscribe()

        scanner.process_batch(["a.jpg"])
        await scanner.wait_idle()
        assert seen == []

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_break_pipeline(self):
        backend = ScriptedBackend({"a.jpg": [_data()]})
        scanner = ReceiptScanner(backend)
        seen: list[tuple] = []

        def broken(items):
            raise RuntimeError("boom")

        scanner.subscribe(broken)
        scanner.subscribe(seen.append)
        scanner.process_batch(["a.jpg"])
        await scanner.wait_idle()

        assert scanner.items[0].status is AnalysisStatus.COMPLETED
        assert len(seen) == 2
