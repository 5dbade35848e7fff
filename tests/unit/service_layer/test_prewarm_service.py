"""
Unit Tests for the Prewarm Controller
"""

import asyncio

import pytest

from menu_tts.application.services.prewarm_service import PrewarmController
from menu_tts.application.services.speech_service import SpeechService
from menu_tts.core.config.constants import DEFAULT_PREWARM_PHRASES
from menu_tts.core.exceptions import PrewarmInProgressError
from menu_tts.infrastructure.cache.cache_key import derive_cache_key
from tests.test_fixtures.fakes import FakeSynthesizer

PHRASES = ["上ロース", "中ロース", "特上ハラミ", "上ハラミ", "並ハラミ", "上ミノ", "上タン"]
BATCH_GAP = object()


class RecordingSleep:
    def __init__(self, events=None):
        self.calls: list[float] = []
        self.events = events if events is not None else []

    async def __call__(self, seconds):
        self.calls.append(seconds)
        self.events.append(BATCH_GAP)


class TracingSynthesizer(FakeSynthesizer):
    """Logs each call into a shared event list and tracks peak concurrency."""

    def __init__(self, events):
        super().__init__(delay=0.01)
        self.events = events
        self.active = 0
        self.peak = 0

    async def synthesize(self, text, timeout=None):
        self.events.append(text)
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            return await super().synthesize(text, timeout)
        finally:
            self.active -= 1


def split_batches(events):
    batches = [[]]
    for event in events:
        if event is BATCH_GAP:
            batches.append([])
        else:
            batches[-1].append(event)
    return batches


@pytest.fixture
def speech_service(tiered_cache, fake_synthesizer, metrics_tracker):
    return SpeechService(tiered_cache, fake_synthesizer, metrics_tracker)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def controller(speech_service, sleep):
    return PrewarmController(speech_service, batch_size=3, batch_delay=1.0, sleep=sleep)


@pytest.mark.unit
class TestPrewarmRun:
    async def test_batches_and_delays(self, controller, fake_synthesizer, sleep):
        status = await controller.run(PHRASES)

        assert status.total == 7
        assert status.completed == 7
        assert status.failed == 0
        assert status.in_progress is False
        assert sleep.calls == [1.0, 1.0]
        assert sorted(t for t, _ in fake_synthesizer.calls) == sorted(PHRASES)
        assert all(timeout == 25.0 for _, timeout in fake_synthesizer.calls)

    async def test_items_are_grouped_in_concurrent_batches(self, tiered_cache, metrics_tracker):
        events = []
        synthesizer = TracingSynthesizer(events)
        controller = PrewarmController(
            SpeechService(tiered_cache, synthesizer, metrics_tracker),
            batch_size=3,
            batch_delay=1.0,
            sleep=RecordingSleep(events),
        )

        await controller.run(PHRASES)

        batches = split_batches(events)
        assert [sorted(batch) for batch in batches] == [
            sorted(PHRASES[0:3]),
            sorted(PHRASES[3:6]),
            sorted(PHRASES[6:]),
        ]
        assert synthesizer.peak == 3

    async def test_items_reach_durable_tiers_marked_prewarmed(self, controller, object_store_tier):
        await controller.run(["上ロース"])

        key = derive_cache_key("上ロース")
        assert object_store_tier.metadata[key]["prewarmed"] == "true"

    async def test_cached_items_are_skipped(self, controller, blob_tier, fake_synthesizer):
        blob_tier.data[derive_cache_key("上ロース")] = b"ID3cached"

        status = await controller.run(["上ロース", "中ロース"])

        assert status.completed == 2
        assert status.skipped == 1
        assert [t for t, _ in fake_synthesizer.calls] == ["中ロース"]

    async def test_force_resynthesizes_cached_items(self, controller, blob_tier, fake_synthesizer):
        blob_tier.data[derive_cache_key("上ロース")] = b"ID3cached"

        status = await controller.run(["上ロース"], force=True)

        assert status.skipped == 0
        assert [t for t, _ in fake_synthesizer.calls] == ["上ロース"]

    async def test_failures_are_counted_and_do_not_abort(self, tiered_cache, metrics_tracker, sleep):
        synthesizer = FakeSynthesizer(fail_for={"中ロース"})
        controller = PrewarmController(
            SpeechService(tiered_cache, synthesizer, metrics_tracker), sleep=sleep
        )

        status = await controller.run(["上ロース", "中ロース", "特上ハラミ", "上ハラミ"])

        assert status.total == 4
        assert status.completed == 3
        assert status.failed == 1

    async def test_duplicates_and_blanks_are_dropped(self, controller):
        status = await controller.run(["上ロース", " 上ロース ", "", "中ロース"])

        assert status.total == 2


@pytest.mark.unit
class TestPrewarmStart:
    async def test_start_runs_in_background(self, controller):
        started = controller.start(["上ロース", "中ロース"])

        assert started.in_progress is True
        assert started.total == 2

        await controller.wait()
        assert controller.status.completed == 2
        assert controller.in_progress is False

    async def test_second_start_is_rejected_without_touching_status(self, tiered_cache, metrics_tracker, sleep):
        synthesizer = FakeSynthesizer(delay=0.05)
        controller = PrewarmController(
            SpeechService(tiered_cache, synthesizer, metrics_tracker), sleep=sleep
        )
        controller.start(["上ロース", "中ロース"])
        await asyncio.sleep(0)
        before = controller.status

        with pytest.raises(PrewarmInProgressError):
            controller.start(["並ハラミ"])

        assert controller.status.total == before.total
        assert controller.status.last_run_at == before.last_run_at
        await controller.wait()
        assert controller.status.completed == 2

    async def test_run_rejected_while_in_progress(self, controller):
        controller.start(["上ロース"])

        with pytest.raises(PrewarmInProgressError):
            await controller.run(["中ロース"])
        await controller.wait()

    async def test_default_targets_merge_popular_texts(self, controller, speech_service):
        await speech_service.speak("季節限定カルビ")
        await speech_service.speak("上ロース")

        targets = controller.default_targets()

        assert targets[: len(DEFAULT_PREWARM_PHRASES)] == list(DEFAULT_PREWARM_PHRASES)
        assert targets[len(DEFAULT_PREWARM_PHRASES):] == ["季節限定カルビ"]

    async def test_empty_phrase_list_is_an_empty_run(self, controller, fake_synthesizer):
        status = controller.start([])
        await controller.wait()

        assert status.total == 0
        assert controller.status.completed == 0
        assert controller.in_progress is False
        assert fake_synthesizer.calls == []

    async def test_start_without_phrases_uses_defaults(self, controller):
        status = controller.start()
        await controller.close()

        assert status.total == len(DEFAULT_PREWARM_PHRASES)
        assert controller.in_progress is False
