"""
YouTube Data API v3 client for channel discovery.

Covers the four lookups the pipeline needs: channel metadata (<=50 ids per
call), recent uploads with enrichment, keyword search and the trending
chart. Search and trending return channel ids plus a page token.
"""
import logging
from datetime import datetime
from typing import Optional

import httpx

from .models import ChannelRecord, SearchPage, VideoRecord
from .normalizer import parse_timestamp

logger = logging.getLogger(__name__)

YOUTUBE_API_BASE = "https://www.googleapis.com/youtube/v3"
MAX_IDS_PER_REQUEST = 50  # YouTube API allows up to 50 IDs per request
DURATION_FILTERS = ("any", "short", "medium", "long")


def _to_int(value) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _parse_channel(item: dict) -> ChannelRecord:
    snippet = item.get("snippet", {})
    stats = item.get("statistics", {})
    content = item.get("contentDetails", {})
    thumbnails = snippet.get("thumbnails", {})

    return ChannelRecord(
        channel_id=item["id"],
        title=snippet.get("title", ""),
        description=snippet.get("description", "") or "",
        published_at=snippet.get("publishedAt", ""),
        thumbnail_url=thumbnails.get("default", {}).get("url"),
        subscriber_count=_to_int(stats.get("subscriberCount")),
        video_count=_to_int(stats.get("videoCount")),
        view_count=_to_int(stats.get("viewCount")),
        uploads_playlist_id=content.get("relatedPlaylists", {}).get("uploads"),
        hidden_subscriber_count=bool(stats.get("hiddenSubscriberCount", False)),
    )


def _channel_ids_from_items(items: list[dict]) -> list[str]:
    """Distinct snippet.channelId values, in response order."""
    seen: dict[str, None] = {}
    for item in items:
        channel_id = item.get("snippet", {}).get("channelId")
        if channel_id:
            seen.setdefault(channel_id, None)
    return list(seen)


def _parse_playlist_items(items: list[dict]) -> list[VideoRecord]:
    videos = []
    for item in items:
        snippet = item.get("snippet", {})
        video_id = snippet.get("resourceId", {}).get("videoId", "")
        if not video_id:
            continue
        videos.append(VideoRecord(
            video_id=video_id,
            title=snippet.get("title", ""),
            published_at=snippet.get("publishedAt", ""),
        ))
    return videos


class YouTubeClient:
    """Async wrapper over the handful of YouTube endpoints we use."""

    def __init__(
        self,
        api_key: str,
        base_url: str = YOUTUBE_API_BASE,
        region_code: str = "US",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.region_code = region_code
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _get(self, endpoint: str, params: dict) -> dict:
        resp = await self._client.get(
            f"{self.base_url}/{endpoint}",
            params={**params, "key": self.api_key},
        )
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object from {endpoint}, got {type(data).__name__}")
        return data

    async def fetch_channel_metadata(self, channel_ids: list[str]) -> list[ChannelRecord]:
        """Fetch snippet/statistics/contentDetails for up to 50 channels.

        Raises:
            ValueError: If more than 50 ids are requested.
            httpx.HTTPStatusError: On a non-2xx API response.
        """
        if not channel_ids:
            return []
        if len(channel_ids) > MAX_IDS_PER_REQUEST:
            raise ValueError(
                f"fetch_channel_metadata accepts at most {MAX_IDS_PER_REQUEST} ids, "
                f"got {len(channel_ids)}"
            )

        data = await self._get("channels", {
            "part": "snippet,statistics,contentDetails",
            "id": ",".join(channel_ids),
        })

        channels = []
        for item in data.get("items", []):
            try:
                channels.append(_parse_channel(item))
            except KeyError:
                logger.warning("Skipping channel item without id: %s", item)
        return channels

    async def fetch_recent_videos(
        self,
        uploads_playlist_id: Optional[str],
        max_results: int = 10,
        published_after: Optional[datetime] = None,
    ) -> list[VideoRecord]:
        """List recent uploads for a channel and enrich them.

        Without published_after a single page is read. With it, pages are
        followed while the oldest upload on the page is still newer than
        published_after, up to max_results videos in total.

        A failure on the first listing page returns an empty list; a later
        page failure keeps what was already listed. Enrichment failures
        leave the affected videos un-enriched.
        """
        if not uploads_playlist_id or max_results < 1:
            return []

        videos: list[VideoRecord] = []
        page_token = None
        while len(videos) < max_results:
            params = {
                "part": "snippet",
                "playlistId": uploads_playlist_id,
                "maxResults": min(max_results - len(videos), MAX_IDS_PER_REQUEST),
            }
            if page_token:
                params["pageToken"] = page_token

            try:
                data = await self._get("playlistItems", params)
            except httpx.HTTPStatusError as e:
                logger.warning(
                    "Could not fetch videos for playlist %s: %s",
                    uploads_playlist_id,
                    e.response.status_code,
                )
                break
            except (httpx.HTTPError, ValueError) as e:
                logger.warning("Could not fetch videos for playlist %s: %s", uploads_playlist_id, e)
                break

            page = _parse_playlist_items(data.get("items", []))
            videos.extend(page)

            page_token = data.get("nextPageToken")
            if not page_token or published_after is None or not page:
                break
            oldest = parse_timestamp(page[-1].published_at)
            if oldest is None or oldest <= published_after:
                break

        videos = videos[:max_results]
        for start in range(0, len(videos), MAX_IDS_PER_REQUEST):
            await self._enrich_videos(videos[start:start + MAX_IDS_PER_REQUEST])
        return videos

    async def _enrich_videos(self, videos: list[VideoRecord]) -> None:
        """Fill kids flag, tags, category, duration and views in place."""
        try:
            details = await self._get("videos", {
                "part": "snippet,status,contentDetails,statistics",
                "id": ",".join(v.video_id for v in videos),
            })
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Failed to fetch rich video metadata: %s", e)
            return

        meta = {
            item["id"]: item
            for item in details.get("items", [])
            if isinstance(item, dict) and item.get("id")
        }
        for v in videos:
            item = meta.get(v.video_id)
            if item is None:
                continue
            snippet = item.get("snippet", {})
            v.is_made_for_kids = bool(item.get("status", {}).get("madeForKids", False))
            v.tags = snippet.get("tags", []) or []
            v.category_id = snippet.get("categoryId")
            v.duration = item.get("contentDetails", {}).get("duration")
            v.view_count = _to_int(item.get("statistics", {}).get("viewCount"))

    async def search_channels_by_topic(
        self,
        topic: str,
        max_results: int = 50,
        page_token: Optional[str] = None,
        duration: str = "any",
    ) -> SearchPage:
        """Search videos for a topic and return the uploading channels.

        Ordered by view count so the most successful channels surface first.
        Costs 100 quota units per call.
        """
        if duration not in DURATION_FILTERS:
            raise ValueError(f"duration must be one of {DURATION_FILTERS}, got {duration!r}")

        params = {
            "part": "snippet",
            "q": topic,
            "type": "video",
            "order": "viewCount",
            "maxResults": min(max_results, MAX_IDS_PER_REQUEST),
        }
        if duration != "any":
            params["videoDuration"] = duration
        if page_token:
            params["pageToken"] = page_token

        data = await self._get("search", params)
        return SearchPage(
            ids=_channel_ids_from_items(data.get("items", [])),
            next_page_token=data.get("nextPageToken"),
        )

    async def fetch_trending_channel_ids(
        self,
        category_id: Optional[str] = None,
        max_results: int = 50,
        page_token: Optional[str] = None,
    ) -> SearchPage:
        """Channels behind the most-popular chart, optionally per category."""
        params = {
            "part": "snippet",
            "chart": "mostPopular",
            "regionCode": self.region_code,
            "maxResults": min(max_results, MAX_IDS_PER_REQUEST),
        }
        if category_id:
            params["videoCategoryId"] = category_id
        if page_token:
            params["pageToken"] = page_token

        data = await self._get("videos", params)
        return SearchPage(
            ids=_channel_ids_from_items(data.get("items", [])),
            next_page_token=data.get("nextPageToken"),
        )

    async def resolve_channel(self, query: str) -> Optional[str]:
        """Resolve a handle or free-text name to a channel id."""
        data = await self._get("search", {
            "part": "snippet",
            "type": "channel",
            "q": query,
            "maxResults": 1,
        })
        items = data.get("items", [])
        if not items:
            return None
        return items[0].get("snippet", {}).get("channelId")
