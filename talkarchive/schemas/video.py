"""
Pydantic schemas for the public archive endpoints.

These schemas define the response structures for video listings, video
detail, tags and search results.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from talkarchive.models import Video


# ========================================
# Video Schemas
# ========================================

class VideoSummary(BaseModel):
    """A completed video as it appears in listings and search results."""

    model_config = ConfigDict(from_attributes=True)

    youtube_id: str = Field(..., description="YouTube video ID", examples=["dQw4w9WgXcQ"])
    title: str
    description: Optional[str] = None
    published_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    thumbnail_url: Optional[str] = None
    view_count: Optional[int] = None
    channel_id: Optional[str] = Field(None, description="YouTube channel ID of the owner")
    channel_name: Optional[str] = None

    @classmethod
    def from_video(cls, video: Video) -> "VideoSummary":
        channel = video.channel
        return cls(
            youtube_id=video.youtube_id,
            title=video.title,
            description=video.description,
            published_at=video.published_at,
            duration_seconds=video.duration_seconds,
            thumbnail_url=video.thumbnail_url,
            view_count=video.view_count,
            channel_id=channel.youtube_id if channel else None,
            channel_name=channel.name if channel else None,
        )


class VideoListItem(VideoSummary):
    tags: List[str] = Field(default_factory=list)

    @classmethod
    def from_video(cls, video: Video) -> "VideoListItem":
        summary = VideoSummary.from_video(video)
        return cls(**summary.model_dump(), tags=[tag.name for tag in video.tags or []])


class VideoListResponse(BaseModel):
    """Paginated list of completed videos, newest first."""

    videos: List[VideoListItem]
    total: int = Field(..., description="Completed videos matching the filter")
    limit: int
    offset: int


class VideoDetail(VideoListItem):
    """Full video page: transcript text, summary and source."""

    transcript: Optional[str] = Field(None, description="Cleaned transcript, or raw when enrichment was skipped")
    summary: Optional[str] = None
    transcript_source: Optional[str] = Field(None, examples=["extractor", "whisper-fallback"])

    @classmethod
    def from_video(cls, video: Video) -> "VideoDetail":
        item = VideoListItem.from_video(video)
        transcript = video.transcript
        return cls(
            **item.model_dump(),
            transcript=transcript.display_text if transcript else None,
            summary=transcript.summary if transcript else None,
            transcript_source=str(transcript.source) if transcript and transcript.source else None,
        )


# ========================================
# Tags
# ========================================

class TagCount(BaseModel):
    name: str
    video_count: int


class TagListResponse(BaseModel):
    tags: List[TagCount]


# ========================================
# Search
# ========================================

class SearchResult(BaseModel):
    video: VideoSummary
    snippet: str = Field(..., description="Best matching excerpt of the transcript")
    strategy: str = Field(..., description="Strategy that surfaced the video", examples=["tag", "semantic", "lexical"])


class SearchResponse(BaseModel):
    query: str
    results: List[SearchResult]
    total: int
