"""
Dedup and pre-filter gate for candidate channels.

Drops ids seen earlier in the run, ids that already have a stored
classification (unless force_fresh), and channels below the minimum
subscriber / video / velocity thresholds.
"""
import logging
from typing import Optional

from .models import NormalizedMetrics, SkipCounts

logger = logging.getLogger(__name__)

# ~1 video every 100 days
MIN_LIFETIME_VELOCITY = 0.01

SKIP_LOW_SUBSCRIBERS = "low_subscribers"
SKIP_LOW_VIDEO_COUNT = "low_video_count"
SKIP_LOW_VELOCITY = "low_velocity"


class CandidateGate:
    """Filters batches of channel ids for one run."""

    def __init__(
        self,
        db,
        skipped: SkipCounts,
        min_subscribers: int = 0,
        min_videos: int = 0,
        force_fresh: bool = False,
    ):
        self.db = db
        self.skipped = skipped
        self.min_subscribers = min_subscribers
        self.min_videos = min_videos
        self.force_fresh = force_fresh

    def admit(self, batch: list[str], visited: set[str]) -> list[str]:
        """Drop ids already visited this run and mark the rest visited."""
        admitted = []
        for channel_id in batch:
            if channel_id in visited:
                continue
            visited.add(channel_id)
            admitted.append(channel_id)
        return admitted

    def drop_existing(self, channel_ids: list[str]) -> list[str]:
        """Drop ids with a stored classification, unless force_fresh is set."""
        if self.force_fresh or not channel_ids:
            return channel_ids

        existing = self.db.get_existing_channel_ids(channel_ids)
        if existing:
            self.skipped.already_exists += len(existing)
            logger.debug("Skipping %d already classified channels", len(existing))
        return [cid for cid in channel_ids if cid not in existing]

    def prefilter(self, channel_id: str, metrics: NormalizedMetrics) -> Optional[str]:
        """Apply threshold filters in order.

        Returns:
            The skip reason of the first failing filter, or None if the
            channel passes all of them.
        """
        if metrics.subscriber_count < self.min_subscribers:
            self.skipped.low_subscribers += 1
            reason = SKIP_LOW_SUBSCRIBERS
        elif metrics.video_count < self.min_videos:
            self.skipped.low_video_count += 1
            reason = SKIP_LOW_VIDEO_COUNT
        elif metrics.lifetime_velocity < MIN_LIFETIME_VELOCITY:
            self.skipped.low_velocity += 1
            reason = SKIP_LOW_VELOCITY
        else:
            return None

        logger.debug("Skipping %s: %s", channel_id, reason)
        return reason
