"""
Data models for the discovery and classification pipeline.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Classification(str, Enum):
    SLOP = "SLOP"
    SUSPICIOUS = "SUSPICIOUS"
    OKAY = "OKAY"


class SlopType(str, Enum):
    AI_MUSIC = "ai_music"
    KIDS_CONTENT = "kids_content"
    AI_VOICE = "ai_voice"
    BACKGROUND_MUSIC = "background_music"
    TEMPLATED_SPAM = "templated_spam"


class Method(str, Enum):
    RULE = "rule"
    AI = "ai"


class Tier(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class ClassificationMode(str, Enum):
    """How a candidate is routed through the classifiers."""
    RULES_THEN_AI = "rules_then_ai"
    AI_ONLY = "ai_only"


class StopReason(str, Enum):
    TARGET_REACHED = "target_reached"
    TIME_BUDGET = "time_budget"
    EXHAUSTED = "exhausted"


# ── Provider records ──────────────────────────────────────────────────


@dataclass
class ChannelRecord:
    """A channel as returned by the metadata provider."""
    channel_id: str
    title: str
    description: str
    published_at: str
    thumbnail_url: Optional[str]
    subscriber_count: int
    video_count: int
    view_count: int
    uploads_playlist_id: Optional[str] = None
    hidden_subscriber_count: bool = False


@dataclass
class VideoRecord:
    """A recent upload, enriched with tags/duration/views where available."""
    video_id: str
    title: str
    published_at: str
    tags: list[str] = field(default_factory=list)
    duration: Optional[str] = None  # raw ISO 8601 token, e.g. PT4M13S
    view_count: int = 0
    is_made_for_kids: bool = False
    category_id: Optional[str] = None


@dataclass
class SearchPage:
    """One page of channel ids from a search or trending chart."""
    ids: list[str]
    next_page_token: Optional[str] = None


# ── Normalized view ───────────────────────────────────────────────────


@dataclass(frozen=True)
class NormalizedMetrics:
    """Derived per-channel metrics. All ratios guard their denominator."""
    subscriber_count: int
    video_count: int
    view_count: int
    age_in_days: int  # >= 1
    lifetime_velocity: float  # videos/day over the channel's lifetime
    recent_velocity: float  # videos/day over the trailing 14 days
    views_per_subscriber: float
    average_tag_count: float
    average_duration_seconds: float
    is_made_for_kids: bool
    dominant_category: Optional[str]


@dataclass(frozen=True)
class NormalizedChannel:
    """Channel identity plus its normalized metrics and recent sample."""
    channel_id: str
    title: str
    description: str
    published_at: str
    thumbnail_url: Optional[str]
    latest_video_id: Optional[str]
    recent_videos: list[VideoRecord]
    metrics: NormalizedMetrics


# ── Scoring ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RiskAssessment:
    """Output of the deterministic risk engine."""
    score: int  # clamped to [0, 100]
    reasons: tuple[str, ...]
    tier: Tier


class NLPSignals(BaseModel):
    has_spam_keywords: bool = False
    templated_titles: bool = False
    generic_description: bool = False
    content_type: Optional[str] = None


class BehaviorSignals(BaseModel):
    high_velocity: bool = False
    dead_engagement: bool = False
    new_operation: bool = False


class AIVerdict(BaseModel):
    """The JSON object the text-generation model is asked to return."""
    classification: Classification
    confidence: float  # 0-100, or a 0-1 fraction
    slop_score: Optional[float] = None  # 0-100, or a 0-1 fraction
    slop_type: Optional[SlopType] = None
    reasoning: str
    nlp_signals: NLPSignals = Field(default_factory=NLPSignals)
    behavior_signals: BehaviorSignals = Field(default_factory=BehaviorSignals)


@dataclass(frozen=True)
class AIAnalysis:
    reasoning: str
    nlp_signals: NLPSignals
    behavior_signals: BehaviorSignals


@dataclass(frozen=True)
class ClassificationResult:
    """Final verdict for one channel. Persisted by upsert on channel_id."""
    channel_id: str
    title: str
    description: str
    thumbnail_url: Optional[str]
    category_id: Optional[str]
    classification: Classification
    confidence: int  # 0-100
    slop_score: int  # 0-100
    slop_type: Optional[SlopType]
    method: Method
    reasons: tuple[str, ...]
    metrics: NormalizedMetrics
    ai_analysis: Optional[AIAnalysis]
    recent_video_titles: tuple[str, ...]


# ── Run bookkeeping ───────────────────────────────────────────────────


@dataclass
class SkipCounts:
    already_exists: int = 0
    low_subscribers: int = 0
    low_video_count: int = 0
    low_velocity: int = 0


@dataclass
class RunSummary:
    """Aggregate counts for one ingestion run. Never persisted."""
    total: int
    slop: int
    suspicious: int
    okay: int
    skipped: SkipCounts
    stop_reason: Optional[StopReason] = None

    @classmethod
    def from_results(
        cls,
        results: list[ClassificationResult],
        skipped: SkipCounts,
        stop_reason: Optional[StopReason] = None,
    ) -> "RunSummary":
        def count(kind: Classification) -> int:
            return sum(1 for r in results if r.classification == kind)

        return cls(
            total=len(results),
            slop=count(Classification.SLOP),
            suspicious=count(Classification.SUSPICIOUS),
            okay=count(Classification.OKAY),
            skipped=skipped,
            stop_reason=stop_reason,
        )

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "slop": self.slop,
            "suspicious": self.suspicious,
            "okay": self.okay,
            "skipped": {
                "already_exists": self.skipped.already_exists,
                "low_subscribers": self.skipped.low_subscribers,
                "low_video_count": self.skipped.low_video_count,
                "low_velocity": self.skipped.low_velocity,
            },
            "stop_reason": self.stop_reason.value if self.stop_reason else None,
        }


@dataclass
class IngestionRequest:
    """Parameters for one discovery-and-classification session."""
    seed_channel_ids: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    min_subscribers: int = 0
    min_videos: int = 0
    target_count: int = 100
    force_fresh: bool = False
    duration: str = "any"  # any | short | medium | long
    mode: ClassificationMode = ClassificationMode.RULES_THEN_AI
    trending_category: Optional[str] = None


@dataclass
class IngestionReport:
    summary: RunSummary
    results: list[ClassificationResult]
