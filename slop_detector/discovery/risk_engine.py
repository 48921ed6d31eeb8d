"""
Deterministic risk scoring for normalized channels.

Starts from a neutral baseline and walks an ordered list of signals, each
adding or subtracting a fixed weight. LOW and HIGH tiers are decided here;
MEDIUM is left to the AI classifier.
"""
import logging
import re
from typing import Optional

from .models import (
    Classification,
    ClassificationResult,
    Method,
    NormalizedChannel,
    RiskAssessment,
    SlopType,
    Tier,
)

logger = logging.getLogger(__name__)

BASELINE_SCORE = 50
LOW_TIER_BELOW = 30  # score < 30 => LOW
HIGH_TIER_ABOVE = 80  # score > 80 => HIGH

KIDS_OVERRIDE_SCORE = 100
KIDS_OVERRIDE_CONFIDENCE = 90

# Signal thresholds and weights (positive weight = more risk)
SIGNALS = {
    "large_audience": {
        "min_subscribers": 1_000_000,
        # Above this many uploads a big audience no longer vouches for a channel
        "content_farm_video_count": 5_000,
        "weight": -25,
    },
    "strong_reach": {
        "min_views_per_subscriber": 100.0,
        "weight": -10,
    },
    "low_recent_velocity": {
        "max_recent_velocity": 0.5,
        "weight": -10,
    },
    "established": {
        "min_age_days": 5 * 365,
        "weight": -10,
    },
    "spam_keywords": {
        "weight": 20,
    },
    "verified_brand": {
        "weight": -10,
    },
    "hashtag_density": {
        "min_hashtags_per_title": 3.0,
        "weight": 10,
    },
    "high_recent_velocity": {
        "min_recent_velocity": 2.0,
        "weight": 20,
    },
    "extreme_recent_velocity": {
        "min_recent_velocity": 5.0,
        "weight": 35,
    },
    "new_channel": {
        "max_age_days": 30,
        "weight": 15,
    },
}

SPAM_KEYWORDS = [
    "lofi",
    "lo-fi",
    "24/7",
    "asmr",
    "nursery rhyme",
    "finger family",
    "compilation",
    "ai generated",
    "relaxing music",
    "sleep music",
    "meditation music",
    "white noise",
    "rain sounds",
    "healing frequency",
    "free robux",
    "money glitch",
    "passive income",
    "crypto giveaway",
    "breaking news 24/7",
]

_SPAM_RE = re.compile(
    "|".join(rf"(?<!\w){re.escape(k)}(?!\w)" for k in SPAM_KEYWORDS),
    re.IGNORECASE,
)

# Official artist / label / broadcaster naming conventions
VERIFIED_BRAND_RE = re.compile(
    r"(?:\bvevo$|\s-\stopic$|\bofficial\b|\brecords$|\bmusic group$)",
    re.IGNORECASE,
)

_HASHTAG_RE = re.compile(r"#\w+")


def tier_for_score(score: int) -> Tier:
    """Map a clamped score to its tier."""
    if score < LOW_TIER_BELOW:
        return Tier.LOW
    if score > HIGH_TIER_ABOVE:
        return Tier.HIGH
    return Tier.MEDIUM


def find_spam_keywords(text: str) -> list[str]:
    """Distinct spam keywords found in text, lower-cased, in match order."""
    found: dict[str, None] = {}
    for match in _SPAM_RE.finditer(text or ""):
        found.setdefault(match.group(0).lower(), None)
    return list(found)


def hashtags_per_title(titles: list[str]) -> float:
    if not titles:
        return 0.0
    return sum(len(_HASHTAG_RE.findall(t)) for t in titles) / len(titles)


def kids_override(channel: NormalizedChannel) -> Optional[RiskAssessment]:
    """HIGH tier for any channel with a made-for-kids recent upload."""
    if not channel.metrics.is_made_for_kids:
        return None
    return RiskAssessment(
        score=KIDS_OVERRIDE_SCORE,
        reasons=("Made-for-kids content override: recent uploads are flagged for kids",),
        tier=Tier.HIGH,
    )


def assess_risk(channel: NormalizedChannel) -> RiskAssessment:
    """Score a channel. Pure and deterministic for a given input."""
    override = kids_override(channel)
    if override is not None:
        return override

    m = channel.metrics
    score = BASELINE_SCORE
    reasons: list[str] = []

    # Risk-reducing signals
    audience = SIGNALS["large_audience"]
    if (m.subscriber_count >= audience["min_subscribers"]
            and m.video_count <= audience["content_farm_video_count"]):
        score += audience["weight"]
        reasons.append(f"Large established audience ({m.subscriber_count:,} subscribers)")

    reach = SIGNALS["strong_reach"]
    if m.views_per_subscriber >= reach["min_views_per_subscriber"]:
        score += reach["weight"]
        reasons.append(f"Strong organic reach ({m.views_per_subscriber:.0f} views/subscriber)")

    slow = SIGNALS["low_recent_velocity"]
    if m.recent_velocity < slow["max_recent_velocity"]:
        score += slow["weight"]
        reasons.append(f"Low recent upload rate ({m.recent_velocity:.2f}/day)")

    established = SIGNALS["established"]
    if m.age_in_days >= established["min_age_days"]:
        score += established["weight"]
        reasons.append(f"Long-running channel ({m.age_in_days} days old)")

    # Risk-increasing signals
    keywords = find_spam_keywords(f"{channel.title}\n{channel.description}")
    if keywords:
        if VERIFIED_BRAND_RE.search(channel.title or ""):
            score += SIGNALS["verified_brand"]["weight"]
            reasons.append("Verified brand naming pattern in title")
        else:
            score += SIGNALS["spam_keywords"]["weight"]
            reasons.append(f"Spam keywords in title/description: {', '.join(keywords)}")

    density = hashtags_per_title([v.title for v in channel.recent_videos])
    hashtag = SIGNALS["hashtag_density"]
    if density >= hashtag["min_hashtags_per_title"]:
        score += hashtag["weight"]
        reasons.append(f"Excessive hashtags in titles ({density:.1f} per title)")

    extreme = SIGNALS["extreme_recent_velocity"]
    high = SIGNALS["high_recent_velocity"]
    if m.recent_velocity > extreme["min_recent_velocity"]:
        score += extreme["weight"]
        reasons.append(f"Extreme upload velocity ({m.recent_velocity:.2f}/day over 14 days)")
    elif m.recent_velocity > high["min_recent_velocity"]:
        score += high["weight"]
        reasons.append(f"High upload velocity ({m.recent_velocity:.2f}/day over 14 days)")

    new = SIGNALS["new_channel"]
    if m.age_in_days < new["max_age_days"]:
        score += new["weight"]
        reasons.append(f"Very new channel ({m.age_in_days} days old)")

    score = max(0, min(100, score))
    return RiskAssessment(score=score, reasons=tuple(reasons), tier=tier_for_score(score))


def classify_by_rules(channel: NormalizedChannel) -> Optional[ClassificationResult]:
    """Classify LOW/HIGH tier channels; None means escalate to the AI.

    Returns:
        ClassificationResult with method RULE, or None for MEDIUM tier.
    """
    assessment = assess_risk(channel)
    m = channel.metrics

    if assessment.tier == Tier.MEDIUM:
        logger.debug(
            "Rule engine undecided for %s (score=%d)", channel.channel_id, assessment.score
        )
        return None

    if assessment.tier == Tier.HIGH:
        classification = Classification.SLOP
        if m.is_made_for_kids:
            confidence = KIDS_OVERRIDE_CONFIDENCE
            slop_type = SlopType.KIDS_CONTENT
        else:
            confidence = assessment.score
            slop_type = None
    else:
        classification = Classification.OKAY
        confidence = 100 - assessment.score
        slop_type = None

    reasons = assessment.reasons or (f"Risk score {assessment.score}",)

    return ClassificationResult(
        channel_id=channel.channel_id,
        title=channel.title,
        description=channel.description,
        thumbnail_url=channel.thumbnail_url,
        category_id=m.dominant_category,
        classification=classification,
        confidence=confidence,
        slop_score=assessment.score,
        slop_type=slop_type,
        method=Method.RULE,
        reasons=reasons,
        metrics=m,
        ai_analysis=None,
        recent_video_titles=tuple(v.title for v in channel.recent_videos),
    )
