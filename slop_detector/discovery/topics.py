"""
Trend-surfer seeding: trending channels plus rotating slop topics.
"""
import asyncio
import logging
import random
from typing import Optional

from .youtube import YouTubeClient

logger = logging.getLogger(__name__)

# Gaming, Entertainment, Film & Animation, People & Blogs, Science & Tech
TRENDING_CATEGORIES = ["20", "24", "1", "22", "28"]
TRENDING_PAGES_PER_CATEGORY = 2
TOPICS_PER_RUN = 3

# Topics known to attract mass-produced content
SLOP_TOPICS = [
    "minecraft but", "skibidi toilet", "asmr eating", "crypto news",
    "fortnite glitch", "roblox story", "gta 6 leak", "ai tools",
    "lofi hip hop 24/7", "meditation music", "satisfying slime",
    "life hacks", "prank", "reaction", "mr beast clone",
    "ai political news", "election leaks", "government secrets revealed",
    "breaking political news", "political drama",
    "finger family nursery rhymes", "bad baby", "toy play videos",
    "satisfying asmr compilation", "hydraulic press compilation",
    "chatgpt money glitch", "passive income ai", "ai breaking news 24/7",
    "shorts funny animals", "unusual memes", "trending challenges",
]


def pick_topics(count: int = TOPICS_PER_RUN, rng: Optional[random.Random] = None) -> list[str]:
    """Pick distinct random topics from SLOP_TOPICS."""
    rng = rng or random.Random()
    return rng.sample(SLOP_TOPICS, min(count, len(SLOP_TOPICS)))


async def _trending_for_category(youtube: YouTubeClient, category_id: str) -> list[str]:
    ids: list[str] = []
    page_token = None
    try:
        for _ in range(TRENDING_PAGES_PER_CATEGORY):
            page = await youtube.fetch_trending_channel_ids(category_id, 50, page_token)
            ids.extend(page.ids)
            page_token = page.next_page_token
            if not page_token:
                break
    except Exception as e:
        logger.error("Failed to fetch trending for category %s: %s", category_id, e)
    return ids


async def get_trending_seeds(
    youtube: YouTubeClient,
    categories: Optional[list[str]] = None,
) -> list[str]:
    """Distinct channel ids from the trending chart of each category."""
    per_category = await asyncio.gather(
        *(_trending_for_category(youtube, c) for c in (categories or TRENDING_CATEGORIES))
    )
    seeds: dict[str, None] = {}
    for ids in per_category:
        for channel_id in ids:
            seeds.setdefault(channel_id, None)
    logger.info("Collected %d trending seed channels", len(seeds))
    return list(seeds)
