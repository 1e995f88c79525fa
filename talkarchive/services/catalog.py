"""
Read side of the archive plus viewer error reports.

Only COMPLETED videos are ever visible here; a failed or in-flight video
is simply absent until it is reprocessed.
"""

from typing import Optional

from talkarchive.core.config import settings
from talkarchive.core.exceptions import VideoNotFoundError
from talkarchive.core.logging import get_logger
from talkarchive.models import ErrorReport, ErrorReportType, Video
from talkarchive.services.repository import RepositoryFactory

logger = get_logger(__name__)

MAX_REPORT_DESCRIPTION = 2000


class CatalogService:
    def __init__(self, repository_factory: RepositoryFactory):
        self.repository_factory = repository_factory

    async def list_videos(
        self,
        limit: int = 20,
        offset: int = 0,
        channel_id: Optional[str] = None,
    ) -> tuple[list[Video], int]:
        """Completed videos, newest first, with the total for pagination."""
        limit = max(1, min(limit, settings.SEARCH_MAX_LIMIT))
        offset = max(0, offset)
        async with self.repository_factory() as repo:
            return await repo.list_completed_videos(limit, offset, channel_id)

    async def get_video(self, youtube_id: str) -> Video:
        """
        Raises:
            VideoNotFoundError: If the video is unknown or not completed
        """
        async with self.repository_factory() as repo:
            video = await repo.get_video_detail(youtube_id)
        if video is None or not video.is_completed:
            raise VideoNotFoundError(f"Video {youtube_id} not found")
        return video

    async def list_tags(self) -> list[tuple[str, int]]:
        async with self.repository_factory() as repo:
            return await repo.list_tags()

    async def submit_error_report(
        self,
        youtube_id: str,
        category: str,
        description: str,
        timestamp_seconds: Optional[int] = None,
    ) -> ErrorReport:
        """
        Raises:
            ValueError: Unknown category, empty description or negative timestamp
            VideoNotFoundError: If the video is unknown or not completed
        """
        try:
            report_type = ErrorReportType(category)
        except ValueError:
            allowed = ", ".join(t.value for t in ErrorReportType)
            raise ValueError(f"Unknown report category '{category}'. Expected one of: {allowed}")

        description = (description or "").strip()
        if not description:
            raise ValueError("Report description cannot be empty")
        if len(description) > MAX_REPORT_DESCRIPTION:
            raise ValueError(f"Report description exceeds {MAX_REPORT_DESCRIPTION} characters")
        if timestamp_seconds is not None and timestamp_seconds < 0:
            raise ValueError("timestamp_seconds cannot be negative")

        async with self.repository_factory() as repo:
            video = await repo.get_video(youtube_id)
            if video is None or not video.is_completed:
                raise VideoNotFoundError(f"Video {youtube_id} not found")
            report = await repo.create_error_report(
                video.id, report_type, description, timestamp_seconds
            )

        logger.info("error_report_submitted", youtube_id=youtube_id, category=report_type.value)
        return report
