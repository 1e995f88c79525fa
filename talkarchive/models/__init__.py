"""
Database Models

Import models from this module to ensure they're registered with SQLAlchemy:

    from talkarchive.models import Video, Transcript, TranscriptChunk

This ensures that:
1. Alembic can detect all models for migrations
2. Relationships work correctly
3. All models are available throughout the app
"""

from talkarchive.models.content import (
    ALLOWED_TRANSITIONS,
    Channel,
    ProcessingStatus,
    Tag,
    Transcript,
    TranscriptChunk,
    TranscriptSource,
    Video,
    VideoStatus,
    VideoTag,
    can_transition,
    ensure_transition,
)
from talkarchive.models.pipeline import (
    ErrorReport,
    ErrorReportStatus,
    ErrorReportType,
    IngestionLog,
    LogOutcome,
)

__all__ = [
    # Content models
    "Channel",
    "Video",
    "Transcript",
    "Tag",
    "VideoTag",
    "TranscriptChunk",
    # Pipeline models
    "IngestionLog",
    "ErrorReport",
    # Enums
    "ProcessingStatus",
    "VideoStatus",
    "TranscriptSource",
    "LogOutcome",
    "ErrorReportType",
    "ErrorReportStatus",
    # Lifecycle
    "ALLOWED_TRANSITIONS",
    "can_transition",
    "ensure_transition",
]
