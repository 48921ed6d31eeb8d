"""
Ingestion pipeline orchestrator.

Pulls candidate channel ids from seeds / keyword search / trending pages,
filters them, fetches metadata, classifies each channel (rule engine first,
LLM for the ambiguous middle) and upserts every result, until the target
count or the runtime budget is reached or the sources run dry.
"""
import logging
import time
from typing import Callable, Optional

from ..db.database import Database
from .ai_classifier import AIClassifier
from .gate import CandidateGate
from .models import (
    ClassificationMode,
    ClassificationResult,
    IngestionReport,
    IngestionRequest,
    NormalizedChannel,
    RunSummary,
    SkipCounts,
    StopReason,
)
from .normalizer import normalize_channel, recent_window_start
from .risk_engine import classify_by_rules
from .sources import CandidateSourceManager
from .youtube import MAX_IDS_PER_REQUEST, YouTubeClient

logger = logging.getLogger(__name__)

MAX_RUNTIME_SECONDS = 540  # 9 minutes, leaves a minute under a 10 minute hard cap


class RunState:
    """Mutable state for a single run. Owned by the pipeline, never persisted."""

    def __init__(self, seed_channel_ids: list[str], started_at: float):
        # Insertion-ordered set of ids waiting to be processed
        self.candidate_queue: dict[str, None] = dict.fromkeys(seed_channel_ids)
        self.visited: set[str] = set()
        self.started_at = started_at
        self.results: list[ClassificationResult] = []
        self.skipped = SkipCounts()

    def enqueue(self, channel_ids: list[str]) -> None:
        for channel_id in channel_ids:
            if channel_id not in self.visited:
                self.candidate_queue.setdefault(channel_id, None)

    def take_batch(self, size: int) -> list[str]:
        batch = list(self.candidate_queue)[:size]
        for channel_id in batch:
            del self.candidate_queue[channel_id]
        return batch


async def classify_channel(
    channel: NormalizedChannel,
    ai_classifier: AIClassifier,
    mode: ClassificationMode = ClassificationMode.RULES_THEN_AI,
) -> ClassificationResult:
    """Rule engine first, LLM for MEDIUM tier; AI_ONLY skips the rules."""
    if mode == ClassificationMode.RULES_THEN_AI:
        result = classify_by_rules(channel)
        if result is not None:
            return result
    return await ai_classifier.classify(channel)


class IngestionPipeline:
    """Runs discovery-and-classification sessions."""

    def __init__(
        self,
        db: Database,
        youtube: YouTubeClient,
        ai_classifier: AIClassifier,
        max_runtime_seconds: float = MAX_RUNTIME_SECONDS,
        batch_size: int = MAX_IDS_PER_REQUEST,
        recent_video_sample: int = 200,
        clock: Callable[[], float] = time.monotonic,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        self.db = db
        self.youtube = youtube
        self.ai_classifier = ai_classifier
        self.max_runtime_seconds = max_runtime_seconds
        self.batch_size = min(batch_size, MAX_IDS_PER_REQUEST)
        self.recent_video_sample = recent_video_sample
        self.clock = clock

    def _should_stop(self, state: RunState, target_count: int) -> Optional[StopReason]:
        if len(state.results) >= target_count:
            return StopReason.TARGET_REACHED
        if self.clock() - state.started_at >= self.max_runtime_seconds:
            logger.info("Time limit reached. Stopping.")
            return StopReason.TIME_BUDGET
        return None

    async def run(self, request: IngestionRequest) -> IngestionReport:
        """Run one session.

        Steps per loop:
            1. Refill the queue from the sources if it is empty
            2. Take a batch, drop visited and already stored ids
            3. Fetch channel metadata for the survivors
            4. Pre-filter, fetch recent videos, normalize, classify
            5. Upsert each result as soon as it is produced

        Returns:
            IngestionReport with the run summary and ordered results.
        """
        self.db.ensure_channel_tables()

        state = RunState(request.seed_channel_ids, started_at=self.clock())
        sources = CandidateSourceManager(
            self.youtube,
            keywords=request.keywords,
            trending_category=request.trending_category,
            duration=request.duration,
        )
        gate = CandidateGate(
            self.db,
            state.skipped,
            min_subscribers=request.min_subscribers,
            min_videos=request.min_videos,
            force_fresh=request.force_fresh,
        )

        logger.info("Starting ingestion. Target: %d results.", request.target_count)
        logger.info(
            "Filters: min subscribers=%d, min videos=%d, mode=%s",
            request.min_subscribers,
            request.min_videos,
            request.mode.value,
        )

        loop_count = 0
        stop_reason = self._should_stop(state, request.target_count)
        while stop_reason is None:
            loop_count += 1
            logger.info(
                "--- Loop %d (found: %d/%d) ---",
                loop_count,
                len(state.results),
                request.target_count,
            )

            if not state.candidate_queue:
                logger.info("Candidate queue empty. Fetching more...")
                state.enqueue(await sources.refill(state.visited))

            if not state.candidate_queue:
                logger.warning("No more candidates found. Stopping.")
                stop_reason = StopReason.EXHAUSTED
                break

            batch = gate.admit(state.take_batch(self.batch_size), state.visited)
            new_ids = gate.drop_existing(batch)
            if not new_ids:
                logger.info("All candidates in this batch were duplicates. Skipping fetch.")
                stop_reason = self._should_stop(state, request.target_count)
                continue

            logger.info("Processing %d new channels...", len(new_ids))
            await self._process_batch(new_ids, request, state, gate)
            stop_reason = self._should_stop(state, request.target_count)

        summary = RunSummary.from_results(state.results, state.skipped, stop_reason)
        logger.info(
            "Ingestion complete: %d results (slop=%d, suspicious=%d, okay=%d), stop=%s",
            summary.total,
            summary.slop,
            summary.suspicious,
            summary.okay,
            stop_reason.value,
        )
        return IngestionReport(summary=summary, results=list(state.results))

    async def _process_batch(
        self,
        channel_ids: list[str],
        request: IngestionRequest,
        state: RunState,
        gate: CandidateGate,
    ) -> None:
        try:
            channels = await self.youtube.fetch_channel_metadata(channel_ids)
        except Exception as e:
            logger.error("Metadata fetch failed for batch of %d: %s", len(channel_ids), e)
            return

        for channel in channels:
            if self._should_stop(state, request.target_count):
                break

            try:
                preview = normalize_channel(channel, [])
                if gate.prefilter(channel.channel_id, preview.metrics):
                    continue

                logger.info("Analyzing: %s", channel.title)
                recent = await self.youtube.fetch_recent_videos(
                    channel.uploads_playlist_id,
                    self.recent_video_sample,
                    published_after=recent_window_start(),
                )
                normalized = normalize_channel(channel, recent)
                logger.debug(
                    "  > %d recent videos, recent velocity %.2f/day (lifetime %.2f)",
                    len(recent),
                    normalized.metrics.recent_velocity,
                    normalized.metrics.lifetime_velocity,
                )

                result = await classify_channel(normalized, self.ai_classifier, request.mode)
                self.db.upsert_classification(result)
                state.results.append(result)
                logger.info(
                    "  -> %s (%s, confidence=%d)",
                    result.classification.value,
                    result.method.value,
                    result.confidence,
                )
            except Exception as e:
                logger.error("Error analyzing %s: %s", channel.channel_id, e)
