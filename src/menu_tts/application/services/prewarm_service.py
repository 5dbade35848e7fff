"""
Prewarm Batch Controller

Fills the cache ahead of demand for a list of phrases.

    start(phrases, force)
        in progress → PrewarmInProgressError (HTTP 409), status untouched
        otherwise   → reset status, run in the background

    run: batches of PREWARM_BATCH_SIZE processed concurrently, with
    PREWARM_BATCH_DELAY_SECONDS between batches. Each item is skipped when
    some tier already holds it (unless ``force``), otherwise synthesized
    and written to every tier with ``prewarmed=true`` metadata.

A failed item is counted and logged; it never aborts the run.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any

from menu_tts.application.services.speech_service import SpeechService
from menu_tts.core.config.constants import DEFAULT_PREWARM_PHRASES, Stage
from menu_tts.core.exceptions import MenuTTSError, PrewarmInProgressError, PrewarmItemError
from menu_tts.core.logging.logger import get_logger, log_stage
from menu_tts.infrastructure.monitoring.metrics_collector import get_metrics_collector

logger = get_logger(__name__)


@dataclass
class PrewarmStatus:
    total: int = 0
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    in_progress: bool = False
    last_run_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _batches(items: list[str], size: int) -> list[list[str]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


def _dedupe(texts: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result = []
    for text in texts:
        text = text.strip()
        if text and text not in seen:
            seen.add(text)
            result.append(text)
    return result


class PrewarmController:
    """
    Owns the prewarm run state. One run at a time per controller.

    Usage:
        controller = PrewarmController(speech_service)
        controller.start(["上ロース", "中ロース"])
        controller.status.to_dict()
    """

    def __init__(
        self,
        speech_service: SpeechService,
        batch_size: int = 3,
        batch_delay: float = 1.0,
        synthesis_timeout: float = 25.0,
        popular_limit: int = 20,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._speech = speech_service
        self._batch_size = batch_size
        self._batch_delay = batch_delay
        self._synthesis_timeout = synthesis_timeout
        self._popular_limit = popular_limit
        self._sleep = sleep

        self._status = PrewarmStatus()
        self._task: asyncio.Task | None = None

    @property
    def status(self) -> PrewarmStatus:
        """Snapshot of the current or last run."""
        return PrewarmStatus(**asdict(self._status))

    @property
    def in_progress(self) -> bool:
        return self._status.in_progress

    def default_targets(self) -> list[str]:
        """Built-in menu phrases followed by the most popular tracked texts."""
        popular = [m.text for m in self._speech.tracker.rank_popular(self._popular_limit)]
        return _dedupe([*DEFAULT_PREWARM_PHRASES, *popular])

    def start(self, phrases: list[str] | None = None, force: bool = False) -> PrewarmStatus:
        """
        Launch a run in the background.

        Raises:
            PrewarmInProgressError: A run is already active
        """
        if self._status.in_progress:
            raise PrewarmInProgressError()

        targets = _dedupe(phrases) if phrases is not None else self.default_targets()
        self._begin(len(targets))
        self._task = asyncio.ensure_future(self._execute(targets, force))
        return self.status

    async def run(self, phrases: list[str], force: bool = False) -> PrewarmStatus:
        """
        Run to completion in the caller's task.

        Raises:
            PrewarmInProgressError: A run is already active
        """
        if self._status.in_progress:
            raise PrewarmInProgressError()

        targets = _dedupe(phrases)
        self._begin(len(targets))
        await self._execute(targets, force)
        return self.status

    async def wait(self) -> None:
        """Wait for the background run, if any, to finish."""
        if self._task is not None:
            await self._task

    async def close(self) -> None:
        """Cancel a background run on shutdown."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

        # a task cancelled before its first step never reaches _execute's finally
        if self._status.in_progress:
            self._status.in_progress = False
            get_metrics_collector().set_prewarm_in_progress(False)

    def _begin(self, total: int) -> None:
        self._status = PrewarmStatus(
            total=total,
            in_progress=True,
            last_run_at=datetime.now(timezone.utc).isoformat(),
        )
        get_metrics_collector().set_prewarm_in_progress(True)

    async def _execute(self, targets: list[str], force: bool) -> None:
        """
        STAGE-P: Prewarm run
        """
        metrics = get_metrics_collector()
        batches = _batches(targets, self._batch_size)
        log_stage(
            logger, Stage.PREWARM, "Prewarm started",
            total=len(targets), batches=len(batches), force=force,
        )

        try:
            for index, batch in enumerate(batches):
                if index > 0:
                    await self._sleep(self._batch_delay)

                results = await asyncio.gather(
                    *(self._prewarm_one(text, force) for text in batch),
                    return_exceptions=True,
                )
                for text, outcome in zip(batch, results):
                    self._record(text, outcome, metrics)
        finally:
            self._status.in_progress = False
            metrics.set_prewarm_in_progress(False)

        log_stage(
            logger, Stage.PREWARM, "Prewarm finished",
            completed=self._status.completed,
            skipped=self._status.skipped,
            failed=self._status.failed,
        )

    def _record(self, text: str, outcome: Any, metrics) -> None:
        if isinstance(outcome, BaseException):
            self._status.failed += 1
            metrics.record_prewarm_item("failed")
            log_stage(
                logger, Stage.PREWARM, "Prewarm item failed",
                level="warning", text=text, error=str(outcome),
            )
            return

        self._status.completed += 1
        if outcome == "skipped":
            self._status.skipped += 1
        metrics.record_prewarm_item(outcome)

    async def _prewarm_one(self, text: str, force: bool) -> str:
        if not force and await self._speech.is_cached(text):
            return "skipped"

        try:
            await self._speech.get_or_create(
                text,
                timeout=self._synthesis_timeout,
                prewarmed=True,
                wait_durable=True,
                refresh=force,
            )
        except MenuTTSError as e:
            raise PrewarmItemError(f"Prewarm failed: {e.message}", text=text) from e
        return "synthesized"
