"""
Paginated candidate sources: keyword search and the trending chart.

Each keyword (and the trending chart) keeps its own page token. A source
whose last page came back without a next token is exhausted for the rest
of the run. Seed ids are not a source here: they form the initial queue.
"""
import asyncio
import logging
from typing import Optional

from .models import SearchPage
from .youtube import YouTubeClient

logger = logging.getLogger(__name__)

PAGE_SIZE = 50


class _Cursor:
    """Pagination state for one source."""

    def __init__(self):
        self.page_token: Optional[str] = None
        self.started = False
        self.exhausted = False

    def advance(self, page: SearchPage) -> None:
        self.started = True
        self.page_token = page.next_page_token
        if not page.next_page_token:
            self.exhausted = True


class CandidateSourceManager:
    """Refills the candidate queue from keyword search or trending pages.

    Keyword search takes priority: the trending chart is only used when no
    keywords are configured.
    """

    def __init__(
        self,
        youtube: YouTubeClient,
        keywords: Optional[list[str]] = None,
        trending_category: Optional[str] = None,
        duration: str = "any",
        page_size: int = PAGE_SIZE,
    ):
        self.youtube = youtube
        self.keywords = list(dict.fromkeys(keywords or []))
        self.trending_category = trending_category
        self.duration = duration
        self.page_size = page_size

        self._keyword_cursors = {k: _Cursor() for k in self.keywords}
        self._trending_cursor = _Cursor()

    @property
    def exhausted(self) -> bool:
        if self.keywords:
            return all(c.exhausted for c in self._keyword_cursors.values())
        return self._trending_cursor.exhausted

    async def refill(self, visited: set[str]) -> list[str]:
        """Fetch the next page from every live source.

        Returns:
            New channel ids not in visited, deduplicated, in source order.
        """
        if self.keywords:
            live = [k for k in self.keywords if not self._keyword_cursors[k].exhausted]
            pages = await asyncio.gather(*(self._search_keyword(k) for k in live))
        elif not self._trending_cursor.exhausted:
            pages = [await self._fetch_trending()]
        else:
            pages = []

        fresh: dict[str, None] = {}
        for page in pages:
            for channel_id in page:
                if channel_id not in visited:
                    fresh.setdefault(channel_id, None)

        logger.info("Refill found %d new candidates", len(fresh))
        return list(fresh)

    async def _search_keyword(self, keyword: str) -> list[str]:
        cursor = self._keyword_cursors[keyword]
        logger.info(
            "Searching \"%s\" (page: %s, duration: %s)",
            keyword,
            "next" if cursor.started else "first",
            self.duration,
        )
        try:
            page = await self.youtube.search_channels_by_topic(
                keyword, self.page_size, cursor.page_token, self.duration
            )
        except Exception as e:
            logger.error("Search failed for '%s': %s", keyword, e)
            return []

        cursor.advance(page)
        return page.ids

    async def _fetch_trending(self) -> list[str]:
        cursor = self._trending_cursor
        logger.info(
            "Fetching trending channels (page: %s)",
            "next" if cursor.started else "first",
        )
        try:
            page = await self.youtube.fetch_trending_channel_ids(
                self.trending_category, self.page_size, cursor.page_token
            )
        except Exception as e:
            logger.error("Trending fetch failed: %s", e)
            return []

        cursor.advance(page)
        return page.ids
