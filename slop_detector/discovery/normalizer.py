"""
Turn raw channel + recent-video records into NormalizedChannel metrics.

Pure transform: no network or database access. Missing or malformed
fields fall back to empty/zero values instead of raising.
"""
import logging
import re
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Optional

from .models import ChannelRecord, NormalizedChannel, NormalizedMetrics, VideoRecord

logger = logging.getLogger(__name__)

RECENT_WINDOW_DAYS = 14

_DURATION_RE = re.compile(
    r"P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?)?"
)


def parse_duration(duration_str: Optional[str]) -> int:
    """Parse ISO 8601 duration (P1DT1H2M3S, PT4M13S) to seconds.

    Malformed or missing values parse as 0.
    """
    match = _DURATION_RE.fullmatch((duration_str or "").strip())
    if not match:
        return 0
    days, hours, minutes, seconds = (int(g or 0) for g in match.groups())
    return days * 86400 + hours * 3600 + minutes * 60 + seconds


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an API timestamp (2024-01-01T00:00:00Z). None if unparseable."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def recent_window_start(now: Optional[datetime] = None) -> datetime:
    """Start of the trailing window used for recent upload velocity."""
    return (now or datetime.now(timezone.utc)) - timedelta(days=RECENT_WINDOW_DAYS)


def _dominant_category(videos: list[VideoRecord]) -> Optional[str]:
    counts = Counter(v.category_id for v in videos if v.category_id)
    if not counts:
        return None
    return counts.most_common(1)[0][0]


def normalize_channel(
    channel: ChannelRecord,
    recent_videos: list[VideoRecord],
    latest_video_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> NormalizedChannel:
    """Compute NormalizedMetrics for a channel.

    Args:
        channel: Raw channel record from the metadata provider.
        recent_videos: Bounded sample of recent uploads (may be empty).
        latest_video_id: Id of the newest upload, defaults to the first sample.
        now: Reference time, defaults to the current UTC time.

    Returns:
        NormalizedChannel whose metrics are finite and non-negative.
    """
    now = now or datetime.now(timezone.utc)

    published = parse_timestamp(channel.published_at)
    if published is None:
        logger.debug("Unparseable publish date for %s: %r", channel.channel_id, channel.published_at)
        age_in_days = 1
    else:
        age_in_days = max(1, (now - published).days)

    subscriber_count = max(channel.subscriber_count, 0)
    video_count = max(channel.video_count, 0)
    view_count = max(channel.view_count, 0)

    window_start = recent_window_start(now)
    recent_uploads = 0
    for v in recent_videos:
        published_at = parse_timestamp(v.published_at)
        if published_at is not None and published_at > window_start:
            recent_uploads += 1

    # Young channels are measured over their actual lifetime
    recent_divisor = max(1, min(age_in_days, RECENT_WINDOW_DAYS))

    sample_size = len(recent_videos)
    if sample_size:
        average_tag_count = sum(len(v.tags) for v in recent_videos) / sample_size
        average_duration = sum(parse_duration(v.duration) for v in recent_videos) / sample_size
    else:
        average_tag_count = 0.0
        average_duration = 0.0

    metrics = NormalizedMetrics(
        subscriber_count=subscriber_count,
        video_count=video_count,
        view_count=view_count,
        age_in_days=age_in_days,
        lifetime_velocity=video_count / age_in_days,
        recent_velocity=recent_uploads / recent_divisor,
        views_per_subscriber=view_count / max(subscriber_count, 1),
        average_tag_count=average_tag_count,
        average_duration_seconds=average_duration,
        is_made_for_kids=any(v.is_made_for_kids for v in recent_videos),
        dominant_category=_dominant_category(recent_videos),
    )

    if latest_video_id is None and recent_videos:
        latest_video_id = recent_videos[0].video_id

    return NormalizedChannel(
        channel_id=channel.channel_id,
        title=channel.title,
        description=channel.description or "",
        published_at=channel.published_at,
        thumbnail_url=channel.thumbnail_url,
        latest_video_id=latest_video_id,
        recent_videos=list(recent_videos),
        metrics=metrics,
    )
