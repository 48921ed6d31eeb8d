"""
LLM fallback classifier using Ollama.

Used for channels the rule engine leaves in the MEDIUM tier (or for every
channel in AI-only mode). All calls share one RateLimiter so the whole
process respects a minimum interval between requests; rate-limit failures
are retried with exponential backoff, anything else degrades to a fixed
SUSPICIOUS result.
"""
import asyncio
import logging
import re
import time
from typing import Awaitable, Callable, Optional, TypeVar

import httpx
import ollama
from pydantic import ValidationError

from .models import (
    AIAnalysis,
    AIVerdict,
    Classification,
    ClassificationResult,
    Method,
    NormalizedChannel,
)
from .normalizer import parse_duration

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_RETRIES = 3
BASE_DELAY = 2.0  # seconds: 2, 4, 8
RATE_LIMIT_STATUS = (429, 503)
RATE_LIMIT_MARKERS = ("429", "503", "quota", "overloaded")

MAX_PROMPT_VIDEOS = 10
MAX_TAGS_PER_VIDEO = 5
MAX_DESCRIPTION_CHARS = 500

FALLBACK_CONFIDENCE = 50
FALLBACK_SLOP_SCORE = 50

# Used when the model omits slop_score
DEFAULT_SLOP_SCORES = {
    Classification.SLOP: 80,
    Classification.SUSPICIOUS: 50,
    Classification.OKAY: 20,
}

SYSTEM_PROMPT = (
    "You are a trust-and-safety analyst for a video platform. You decide "
    "whether a channel mass-produces low-effort or deceptive content "
    "('slop'). Respond in the exact JSON format requested."
)

CLASSIFY_PROMPT_TEMPLATE = """\
Analyze this YouTube channel and classify it for AI-generated slop/spam content.

CHANNEL:
- Title: "{title}"
- Description: "{description}"
- Category: {category}

RECENT VIDEOS:
{videos}

METRICS:
- Videos per day (lifetime): {lifetime_velocity:.2f}
- Videos per day (last 14 days): {recent_velocity:.2f}
- Account age: {age_in_days} days
- Total videos: {video_count:,}
- Subscribers: {subscriber_count:,}
- Views per subscriber: {views_per_subscriber:.2f}
- Average tags per video: {average_tag_count:.1f}
- Average video length: {average_duration}

TASK: Determine if this is AI-generated spam/slop content (lofi streams, AI voice
narration, algorithmic kids content farms, compilation spam, etc.)

GUIDELINES:
1. Kids content: high quality, human-animated or educational content is OKAY.
   SLOP means weird algorithmic combinations, repetitive nonsensical titles,
   low-effort AI animation.
2. AI voice: narration alone is not slop if the content is high effort.
   Slop is "Wikipedia reading" or "Reddit reading".

Respond with JSON:
{{
  "classification": "SLOP" | "SUSPICIOUS" | "OKAY",
  "confidence": <0-100>,
  "slop_score": <0-100>,
  "slop_type": "ai_music" | "kids_content" | "ai_voice" | "background_music" | "templated_spam" | null,
  "reasoning": "<brief explanation>",
  "nlp_signals": {{
    "has_spam_keywords": <bool>,
    "templated_titles": <bool>,
    "generic_description": <bool>,
    "content_type": <string or null>
  }},
  "behavior_signals": {{
    "high_velocity": <bool>,
    "dead_engagement": <bool>,
    "new_operation": <bool>
  }}
}}"""

_CODE_FENCE_RE = re.compile(r"```(?:json)?")


class MalformedAIResponse(ValueError):
    """The model's reply could not be parsed into an AIVerdict."""


class RateLimiter:
    """Enforces a minimum interval between calls, across all callers.

    Construct one per process and share it; the lock serializes waiters so
    concurrent runs cannot start calls closer together than min_interval.
    """

    def __init__(self, min_interval: float = 1.5, clock: Callable[[], float] = time.monotonic):
        self.min_interval = min_interval
        self.clock = clock
        self._last_request: Optional[float] = None
        self._lock = asyncio.Lock()

    async def wait(self) -> None:
        """Wait for the minimum interval since the last request."""
        async with self._lock:
            if self._last_request is not None:
                elapsed = self.clock() - self._last_request
                if elapsed < self.min_interval:
                    await asyncio.sleep(self.min_interval - elapsed)
            self._last_request = self.clock()


def is_rate_limit_error(error: BaseException) -> bool:
    """True for 429/503 responses and quota/overload messages."""
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
    else:
        status = getattr(error, "status_code", None) or getattr(error, "status", None)
    if status in RATE_LIMIT_STATUS:
        return True
    message = str(error).lower()
    return any(marker in message for marker in RATE_LIMIT_MARKERS)


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    limiter: RateLimiter,
    max_retries: int = MAX_RETRIES,
    base_delay: float = BASE_DELAY,
) -> T:
    """Run fn through the limiter, retrying rate-limit failures only.

    Non rate-limit errors, and the last rate-limit error, propagate.
    """
    last_error: Optional[Exception] = None
    for attempt in range(max_retries + 1):
        await limiter.wait()
        try:
            return await fn()
        except Exception as e:
            if not is_rate_limit_error(e):
                raise
            last_error = e
            if attempt == max_retries:
                break
            delay = base_delay * (2 ** attempt)
            logger.warning(
                "Rate limited, retrying in %.0fs (attempt %d/%d)",
                delay,
                attempt + 1,
                max_retries,
            )
            await asyncio.sleep(delay)

    logger.error("Max retries exceeded: %s", last_error)
    raise last_error


def _format_duration(seconds: float) -> str:
    """Format seconds to human-readable duration."""
    h, remainder = divmod(int(seconds), 3600)
    m, s = divmod(remainder, 60)
    if h:
        return f"{h}h{m}m{s}s"
    return f"{m}m{s}s"


def build_prompt(channel: NormalizedChannel) -> str:
    """Render the classification prompt for a channel."""
    m = channel.metrics
    lines = []
    for v in channel.recent_videos[:MAX_PROMPT_VIDEOS]:
        tags = ", ".join(v.tags[:MAX_TAGS_PER_VIDEO]) or "none"
        lines.append(
            f'- "{v.title}" ({_format_duration(parse_duration(v.duration))}, '
            f"{v.view_count:,} views, tags: {tags})"
        )

    return CLASSIFY_PROMPT_TEMPLATE.format(
        title=channel.title,
        description=channel.description[:MAX_DESCRIPTION_CHARS],
        category=m.dominant_category or "unknown",
        videos="\n".join(lines) or "- (no recent videos)",
        lifetime_velocity=m.lifetime_velocity,
        recent_velocity=m.recent_velocity,
        age_in_days=m.age_in_days,
        video_count=m.video_count,
        subscriber_count=m.subscriber_count,
        views_per_subscriber=m.views_per_subscriber,
        average_tag_count=m.average_tag_count,
        average_duration=_format_duration(m.average_duration_seconds),
    )


def _to_percent(value: float) -> int:
    """Rescale 0-1 fractions to 0-100 and clamp."""
    if value <= 1:
        value *= 100
    return int(round(max(0.0, min(100.0, value))))


def parse_ai_response(text: Optional[str]) -> AIVerdict:
    """Parse the model's reply, tolerating ```json fences.

    Raises:
        MalformedAIResponse: If the reply is empty or not a valid verdict.
    """
    cleaned = _CODE_FENCE_RE.sub("", text or "").strip()
    if not cleaned:
        raise MalformedAIResponse("Empty response from model")
    try:
        verdict = AIVerdict.model_validate_json(cleaned)
    except ValidationError as e:
        raise MalformedAIResponse(f"Invalid classification JSON: {e}") from e

    verdict.confidence = _to_percent(verdict.confidence)
    if verdict.slop_score is None:
        verdict.slop_score = DEFAULT_SLOP_SCORES[verdict.classification]
    else:
        verdict.slop_score = _to_percent(verdict.slop_score)
    return verdict


def fallback_result(channel: NormalizedChannel, error: BaseException) -> ClassificationResult:
    """The fixed SUSPICIOUS result used when the AI path fails."""
    return ClassificationResult(
        channel_id=channel.channel_id,
        title=channel.title,
        description=channel.description,
        thumbnail_url=channel.thumbnail_url,
        category_id=channel.metrics.dominant_category,
        classification=Classification.SUSPICIOUS,
        confidence=FALLBACK_CONFIDENCE,
        slop_score=FALLBACK_SLOP_SCORE,
        slop_type=None,
        method=Method.AI,
        reasons=(f"AI classification failed: {type(error).__name__}: {error}",),
        metrics=channel.metrics,
        ai_analysis=None,
        recent_video_titles=tuple(v.title for v in channel.recent_videos),
    )


class AIClassifier:
    """Classifies channels with a local LLM via Ollama."""

    def __init__(
        self,
        limiter: RateLimiter,
        model: str = "qwen2.5:7b",
        host: Optional[str] = None,
        timeout: float = 60.0,
        client=None,
        max_retries: int = MAX_RETRIES,
        base_delay: float = BASE_DELAY,
    ):
        self.limiter = limiter
        self.model = model
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._client = client or ollama.AsyncClient(host=host, timeout=timeout)

    async def complete(self, prompt: str) -> str:
        """Send one prompt and return the raw reply text."""
        response = await asyncio.wait_for(
            self._client.chat(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                format=AIVerdict.model_json_schema(),
            ),
            timeout=self.timeout,
        )
        return response.message.content

    async def classify(self, channel: NormalizedChannel) -> ClassificationResult:
        """Classify a channel, falling back to SUSPICIOUS on any failure."""
        prompt = build_prompt(channel)

        try:
            text = await call_with_retry(
                lambda: self.complete(prompt),
                self.limiter,
                max_retries=self.max_retries,
                base_delay=self.base_delay,
            )
            verdict = parse_ai_response(text)
        except Exception as e:
            logger.error("AI classification failed for %s: %s", channel.channel_id, e)
            return fallback_result(channel, e)

        return ClassificationResult(
            channel_id=channel.channel_id,
            title=channel.title,
            description=channel.description,
            thumbnail_url=channel.thumbnail_url,
            category_id=channel.metrics.dominant_category,
            classification=verdict.classification,
            confidence=int(verdict.confidence),
            slop_score=int(verdict.slop_score),
            slop_type=verdict.slop_type,
            method=Method.AI,
            reasons=(verdict.reasoning or "No reasoning provided",),
            metrics=channel.metrics,
            ai_analysis=AIAnalysis(
                reasoning=verdict.reasoning,
                nlp_signals=verdict.nlp_signals,
                behavior_signals=verdict.behavior_signals,
            ),
            recent_video_titles=tuple(v.title for v in channel.recent_videos),
        )
