"""
Pydantic schemas for request/response validation.

Import all schemas here for easy access.
"""

from talkarchive.schemas.report import (
    ErrorReportCreate,
    ErrorReportResponse,
    TaskQueuedResponse,
)
from talkarchive.schemas.video import (
    SearchResponse,
    SearchResult,
    TagCount,
    TagListResponse,
    VideoDetail,
    VideoListItem,
    VideoListResponse,
    VideoSummary,
)

__all__ = [
    # Videos
    "VideoSummary",
    "VideoListItem",
    "VideoListResponse",
    "VideoDetail",
    # Tags
    "TagCount",
    "TagListResponse",
    # Search
    "SearchResult",
    "SearchResponse",
    # Reports
    "ErrorReportCreate",
    "ErrorReportResponse",
    "TaskQueuedResponse",
]
