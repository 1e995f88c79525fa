"""
YouTube Data API service for fetching channel and video information.

Thin async wrapper around the YouTube Data API v3 used by the ingestion
orchestrator: channel metadata, paginated upload listings with a
"published after" cursor, and per-video duration/view-count details.
"""

import asyncio
import re
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse, parse_qs

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
import isodate

from talkarchive.core.config import settings
from talkarchive.core.exceptions import (
    ChannelNotFoundError,
    ProviderUnavailable,
    QuotaExceededError,
    VideoNotFoundError,
)

logger = logging.getLogger(__name__)

PROVIDER = "youtube-data-api"

# videos.list accepts at most 50 ids per call
DETAILS_BATCH_SIZE = 50


@dataclass
class ChannelInfo:
    channel_id: str
    title: str
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None
    uploads_playlist_id: Optional[str] = None


@dataclass
class VideoInfo:
    video_id: str
    title: str
    description: Optional[str] = None
    channel_id: Optional[str] = None
    channel_title: Optional[str] = None
    published_at: Optional[datetime] = None
    thumbnail_url: Optional[str] = None
    duration_seconds: Optional[int] = None
    view_count: Optional[int] = None


def parse_published_at(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace('Z', '+00:00'))


def parse_duration(iso_duration: Optional[str]) -> Optional[int]:
    """
    Convert ISO 8601 duration to seconds.

    Example:
        >>> parse_duration("PT15M33S")
        933
    """
    if not iso_duration:
        return None
    try:
        return int(isodate.parse_duration(iso_duration).total_seconds())
    except (isodate.ISO8601Error, ValueError) as e:
        logger.warning(f"Failed to parse duration {iso_duration}: {e}")
        return None


def best_thumbnail(snippet: Dict[str, Any]) -> Optional[str]:
    thumbnails = snippet.get('thumbnails', {})
    for size in ('maxres', 'high', 'medium', 'default'):
        url = thumbnails.get(size, {}).get('url')
        if url:
            return url
    return None


def extract_video_id(value: str) -> str:
    """
    Accept a bare video id or any common YouTube URL form.

    - https://www.youtube.com/watch?v=VIDEO_ID
    - https://youtu.be/VIDEO_ID
    - https://www.youtube.com/embed/VIDEO_ID
    """
    value = value.strip()
    parsed = urlparse(value)
    if 'youtube.com' in parsed.netloc:
        query_params = parse_qs(parsed.query)
        if 'v' in query_params:
            return query_params['v'][0]
        if '/embed/' in parsed.path:
            return parsed.path.split('/embed/')[1].split('?')[0]
    if 'youtu.be' in parsed.netloc:
        return parsed.path.lstrip('/')
    return value


def validate_video_id(video_id: str) -> bool:
    """Video IDs are 11 chars of letters, digits, '-' and '_'."""
    return bool(video_id) and bool(re.match(r'^[a-zA-Z0-9_-]{11}$', video_id))


class YouTubeService:
    """
    Service for interacting with YouTube Data API v3.

    The google client is synchronous; every call is pushed to a worker
    thread so the event loop stays free.

    Example:
        >>> youtube = YouTubeService(api_key="...")
        >>> channel = await youtube.get_channel("UCsBjURrPoezykLs9EqgamOA")
        >>> videos = await youtube.list_channel_videos(channel.channel_id, max_results=10)
    """

    def __init__(self, api_key: Optional[str] = None, client: Any = None):
        """
        Args:
            api_key: YouTube Data API key. If None, uses settings.YOUTUBE_API_KEY
            client: Pre-built discovery client (tests pass a MagicMock)

        Raises:
            ValueError: If no API key is provided or found in settings
        """
        self.api_key = api_key or settings.YOUTUBE_API_KEY

        if client is not None:
            self._youtube = client
            return

        if not self.api_key:
            raise ValueError(
                "YouTube API key is required. Set YOUTUBE_API_KEY in environment variables."
            )

        self._youtube = build(
            'youtube',
            'v3',
            developerKey=self.api_key,
            cache_discovery=False  # Avoid caching issues in production
        )
        logger.info("YouTube API client initialized successfully")

    async def _execute(self, request: Any, not_found: Optional[Exception] = None) -> Dict:
        try:
            return await asyncio.to_thread(request.execute)
        except HttpError as e:
            if e.resp.status == 403:
                raise QuotaExceededError(PROVIDER, "YouTube API quota exceeded") from e
            if e.resp.status == 404 and not_found is not None:
                raise not_found from e
            logger.error(f"YouTube API error: {e}")
            raise ProviderUnavailable(PROVIDER, f"YouTube API error: {e}") from e

    # ========================================
    # Channel Operations
    # ========================================

    async def get_channel(self, channel_id: str) -> ChannelInfo:
        """
        Raises:
            ChannelNotFoundError: If channel doesn't exist
            QuotaExceededError: If API quota exceeded
            ProviderUnavailable: For other API errors
        """
        not_found = ChannelNotFoundError(f"Channel not found: {channel_id}")
        response = await self._execute(
            self._youtube.channels().list(part='snippet,contentDetails', id=channel_id),
            not_found=not_found,
        )
        if not response.get('items'):
            raise not_found

        item = response['items'][0]
        snippet = item.get('snippet', {})
        return ChannelInfo(
            channel_id=item['id'],
            title=snippet.get('title', ''),
            description=snippet.get('description') or None,
            thumbnail_url=best_thumbnail(snippet),
            uploads_playlist_id=(
                item.get('contentDetails', {}).get('relatedPlaylists', {}).get('uploads')
            ),
        )

    # ========================================
    # Video Operations
    # ========================================

    async def list_channel_videos(
        self,
        channel_id: str,
        published_after: Optional[datetime] = None,
        max_results: Optional[int] = None,
        channel: Optional[ChannelInfo] = None,
    ) -> List[VideoInfo]:
        """
        List uploads newer than ``published_after``, newest first.

        Pages through the channel's uploads playlist with ``list_next``.
        The playlist is ordered newest first, so paging stops at the first
        page that contains an upload older than the cursor.

        With a cursor, ``max_results`` keeps the *oldest* uploads after it,
        so a sync that stores them moves the cursor forward without skipping
        a backlog. Without a cursor it keeps the newest.

        Pass ``channel`` when it was already fetched to save a quota unit.

        Returned items carry playlist snippet data only; use
        ``get_videos_details`` for duration and view count.
        """
        channel = channel or await self.get_channel(channel_id)
        if not channel.uploads_playlist_id:
            logger.warning(f"Channel {channel_id} has no uploads playlist")
            return []

        if published_after is None and max_results:
            page_size = min(max_results, DETAILS_BATCH_SIZE)
        else:
            page_size = DETAILS_BATCH_SIZE
        playlist_items = self._youtube.playlistItems()
        request = playlist_items.list(
            part='snippet,contentDetails',
            playlistId=channel.uploads_playlist_id,
            maxResults=page_size,
        )

        videos: List[VideoInfo] = []
        reached_cursor = False

        while request is not None and not reached_cursor:
            response = await self._execute(request)

            for item in response.get('items', []):
                video = self._parse_playlist_item(item)
                if published_after and video.published_at and video.published_at <= published_after:
                    reached_cursor = True
                    continue
                videos.append(video)
                if published_after is None and max_results and len(videos) >= max_results:
                    reached_cursor = True
                    break

            request = playlist_items.list_next(request, response)

        if max_results and len(videos) > max_results:
            videos = videos[-max_results:]

        logger.info(f"Fetched {len(videos)} videos from channel {channel_id}")
        return videos

    async def get_video(self, video_id: str) -> VideoInfo:
        """
        Raises:
            VideoNotFoundError: If video doesn't exist
        """
        not_found = VideoNotFoundError(f"Video not found: {video_id}")
        response = await self._execute(
            self._youtube.videos().list(part='snippet,contentDetails,statistics', id=video_id),
            not_found=not_found,
        )
        if not response.get('items'):
            raise not_found
        return self._parse_video_details(response['items'][0])

    async def get_videos_details(self, video_ids: List[str]) -> Dict[str, VideoInfo]:
        """
        Details for many videos, 50 ids per API call (quota-efficient).

        Returns a mapping keyed by video id; ids YouTube no longer knows
        are simply missing from it.
        """
        details: Dict[str, VideoInfo] = {}
        for i in range(0, len(video_ids), DETAILS_BATCH_SIZE):
            batch = video_ids[i:i + DETAILS_BATCH_SIZE]
            response = await self._execute(
                self._youtube.videos().list(
                    part='snippet,contentDetails,statistics',
                    id=','.join(batch),
                )
            )
            for item in response.get('items', []):
                video = self._parse_video_details(item)
                details[video.video_id] = video
        return details

    # ========================================
    # Helper Methods
    # ========================================

    def _parse_playlist_item(self, item: Dict) -> VideoInfo:
        snippet = item.get('snippet', {})
        content_details = item.get('contentDetails', {})
        video_id = content_details.get('videoId') or snippet.get('resourceId', {}).get('videoId')
        return VideoInfo(
            video_id=video_id,
            title=snippet.get('title', ''),
            description=snippet.get('description') or None,
            channel_id=snippet.get('channelId'),
            channel_title=snippet.get('channelTitle'),
            published_at=parse_published_at(
                content_details.get('videoPublishedAt') or snippet.get('publishedAt')
            ),
            thumbnail_url=best_thumbnail(snippet),
        )

    def _parse_video_details(self, item: Dict) -> VideoInfo:
        snippet = item.get('snippet', {})
        statistics = item.get('statistics', {})
        view_count = statistics.get('viewCount')
        return VideoInfo(
            video_id=item['id'],
            title=snippet.get('title', ''),
            description=snippet.get('description') or None,
            channel_id=snippet.get('channelId'),
            channel_title=snippet.get('channelTitle'),
            published_at=parse_published_at(snippet.get('publishedAt')),
            thumbnail_url=best_thumbnail(snippet),
            duration_seconds=parse_duration(item.get('contentDetails', {}).get('duration')),
            view_count=int(view_count) if view_count is not None else None,
        )
