"""
Pipeline bookkeeping models.

IngestionLog is an append-only audit trail written by the ingestion
orchestrator after every step. ErrorReport holds viewer-submitted
correction notes for a video.
"""

import enum
from typing import Optional

from sqlalchemy import ForeignKey, Integer, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from talkarchive.db.base import BaseModel, StrEnumType, String50


class LogOutcome(str, enum.Enum):
    STARTED = "started"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    DEGRADED = "degraded"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


class ErrorReportType(str, enum.Enum):
    TYPO = "typo"
    MISSING_CONTENT = "missing_content"
    WRONG_SPEAKER = "wrong_speaker"
    OTHER = "other"

    def __str__(self) -> str:
        return self.value


class ErrorReportStatus(str, enum.Enum):
    PENDING = "pending"
    REVIEWED = "reviewed"
    FIXED = "fixed"
    DISMISSED = "dismissed"

    def __str__(self) -> str:
        return self.value


class IngestionLog(BaseModel):
    """One row per orchestrator step. Never updated or deleted."""

    __tablename__ = "ingestion_logs"

    # Nullable so channel-level steps can be logged too
    video_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("videos.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    step: Mapped[str] = mapped_column(String50, nullable=False)

    status: Mapped[LogOutcome] = mapped_column(StrEnumType(LogOutcome), nullable=False)

    details: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)

    def __repr__(self) -> str:
        return f"IngestionLog(video_id={self.video_id}, step='{self.step}', status={self.status})"


class ErrorReport(BaseModel):
    __tablename__ = "error_reports"

    video_id: Mapped[int] = mapped_column(
        ForeignKey("videos.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    report_type: Mapped[ErrorReportType] = mapped_column(
        StrEnumType(ErrorReportType),
        nullable=False,
    )

    description: Mapped[str] = mapped_column(Text, nullable=False)

    timestamp_seconds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    status: Mapped[ErrorReportStatus] = mapped_column(
        StrEnumType(ErrorReportStatus),
        nullable=False,
        default=ErrorReportStatus.PENDING,
    )
