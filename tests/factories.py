"""
Builders for test records.
"""
from datetime import datetime, timedelta, timezone

from slop_detector.discovery.models import (
    ChannelRecord,
    Classification,
    ClassificationResult,
    Method,
    NormalizedChannel,
    NormalizedMetrics,
    VideoRecord,
)

NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)


def iso(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def make_metrics(**kwargs) -> NormalizedMetrics:
    """Neutral metrics: no signal fires unless overridden."""
    defaults = dict(
        subscriber_count=50_000,
        video_count=300,
        view_count=2_500_000,
        age_in_days=400,
        lifetime_velocity=0.75,
        recent_velocity=1.0,
        views_per_subscriber=50.0,
        average_tag_count=5.0,
        average_duration_seconds=600.0,
        is_made_for_kids=False,
        dominant_category="24",
    )
    defaults.update(kwargs)
    return NormalizedMetrics(**defaults)


def make_video(video_id="vid1", title="A normal video", days_ago=1, **kwargs) -> VideoRecord:
    return VideoRecord(
        video_id=video_id,
        title=title,
        published_at=iso(NOW - timedelta(days=days_ago)),
        **kwargs,
    )


def make_normalized(
    channel_id="UCtest",
    title="Test Channel",
    description="Videos about things.",
    recent_videos=None,
    **metric_kwargs,
) -> NormalizedChannel:
    return NormalizedChannel(
        channel_id=channel_id,
        title=title,
        description=description,
        published_at="2024-01-01T00:00:00Z",
        thumbnail_url="https://example.com/thumb.jpg",
        latest_video_id=None,
        recent_videos=recent_videos or [],
        metrics=make_metrics(**metric_kwargs),
    )


def make_channel_record(
    channel_id="UCtest",
    title="Test Channel",
    subscriber_count=50_000,
    video_count=300,
    view_count=2_500_000,
    age_days=400,
    **kwargs,
) -> ChannelRecord:
    return ChannelRecord(
        channel_id=channel_id,
        title=title,
        description=kwargs.pop("description", "Videos about things."),
        published_at=kwargs.pop("published_at", iso(NOW - timedelta(days=age_days))),
        thumbnail_url=kwargs.pop("thumbnail_url", None),
        subscriber_count=subscriber_count,
        video_count=video_count,
        view_count=view_count,
        uploads_playlist_id=kwargs.pop("uploads_playlist_id", "UU" + channel_id[2:]),
        **kwargs,
    )


def make_result(
    channel_id="UCtest",
    classification=Classification.SLOP,
    slop_score=90,
    confidence=90,
    method=Method.RULE,
    **kwargs,
) -> ClassificationResult:
    defaults = dict(
        channel_id=channel_id,
        title="Test Channel",
        description="Videos about things.",
        thumbnail_url=None,
        category_id="10",
        classification=classification,
        confidence=confidence,
        slop_score=slop_score,
        slop_type=None,
        method=method,
        reasons=("test reason",),
        metrics=make_metrics(),
        ai_analysis=None,
        recent_video_titles=("one", "two"),
    )
    defaults.update(kwargs)
    return ClassificationResult(**defaults)
