"""
Content Models

Models Included:
----------------
1. Channel - A YouTube channel we ingest from
2. Video - One upload; its status drives idempotent re-runs
3. Transcript - One-to-one with Video: raw, cleaned and summarized text
4. Tag / VideoTag - Canonical lowercase topic tags and the many-to-many join
5. TranscriptChunk - Overlapping spans of the transcript with embeddings

Relationships:
--------------
- Channel (1) ←→ (Many) Video
- Video (1) ←→ (1) Transcript
- Video (Many) ←→ (Many) Tag via VideoTag
- Video (1) ←→ (Many) TranscriptChunk

Status Lifecycle:
-----------------
Video.status and Transcript.processing_status share one lifecycle:

    PENDING → PROCESSING → COMPLETED
                  ↓
               FAILED → PROCESSING (retry)

PROCESSING → PROCESSING is allowed so a run aborted mid-video can resume.
COMPLETED is terminal. Models expose ``transition_to()``; it is the only
place status is changed.
"""

import enum
from datetime import datetime
from typing import Optional

from pgvector.sqlalchemy import Vector
from sqlalchemy import BigInteger, DateTime, ForeignKey, Integer, Float, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from talkarchive.core.config import settings
from talkarchive.core.exceptions import InvalidStatusTransition
from talkarchive.db.base import (
    Base,
    BaseModel,
    StrEnumType,
    String50,
    String100,
    String255,
    String500,
)


# ================================
# Enums
# ================================

class ProcessingStatus(str, enum.Enum):
    """Lifecycle shared by Video.status and Transcript.processing_status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    def __str__(self) -> str:
        """Return the string value of the enum."""
        return self.value


# Videos use the same lifecycle; the alias keeps call sites readable.
VideoStatus = ProcessingStatus


class TranscriptSource(str, enum.Enum):
    """Where the transcript text came from."""

    # Accepted in stored rows; the caption provider records EXTRACTOR
    CAPTIONS = "captions"
    EXTRACTOR = "extractor"
    WHISPER_FALLBACK = "whisper-fallback"

    def __str__(self) -> str:
        return self.value


ALLOWED_TRANSITIONS: dict[ProcessingStatus, frozenset[ProcessingStatus]] = {
    ProcessingStatus.PENDING: frozenset({ProcessingStatus.PROCESSING, ProcessingStatus.FAILED}),
    ProcessingStatus.PROCESSING: frozenset({
        ProcessingStatus.PROCESSING,
        ProcessingStatus.COMPLETED,
        ProcessingStatus.FAILED,
    }),
    ProcessingStatus.FAILED: frozenset({ProcessingStatus.PROCESSING}),
    ProcessingStatus.COMPLETED: frozenset(),
}


def can_transition(current: Optional[ProcessingStatus], new: ProcessingStatus) -> bool:
    """A row with no status yet behaves like PENDING."""
    current = ProcessingStatus(current) if current is not None else ProcessingStatus.PENDING
    return ProcessingStatus(new) in ALLOWED_TRANSITIONS[current]


def ensure_transition(entity: str, current: Optional[ProcessingStatus], new: ProcessingStatus) -> None:
    if not can_transition(current, new):
        raise InvalidStatusTransition(entity, current, new)


# ================================
# Channel Model
# ================================

class Channel(BaseModel):
    """
    A YouTube channel.

    Created once per upstream channel. Afterwards only metadata
    (name, description, thumbnail) is refreshed.
    """

    __tablename__ = "channels"

    youtube_id: Mapped[str] = mapped_column(
        String50,
        unique=True,
        nullable=False,
        comment="YouTube channel ID (UC...)"
    )

    name: Mapped[str] = mapped_column(
        String255,
        nullable=False,
        comment="Display name"
    )

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    thumbnail_url: Mapped[Optional[str]] = mapped_column(String500, nullable=True)

    last_synced_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Last successful channel-level sync"
    )

    videos: Mapped[list["Video"]] = relationship(
        "Video",
        back_populates="channel",
        lazy="raise",
    )

    def __repr__(self) -> str:
        return f"Channel(id={self.id}, youtube_id='{self.youtube_id}', name='{self.name}')"


# ================================
# Video Model
# ================================

class Video(BaseModel):
    """
    One uploaded video.

    ``status`` is the sole coordination signal for re-runs: only videos
    that are not COMPLETED get processed again. Public listings only
    ever show COMPLETED videos.
    """

    __tablename__ = "videos"

    youtube_id: Mapped[str] = mapped_column(
        String50,
        unique=True,
        nullable=False,
        comment="YouTube video ID"
    )

    channel_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("channels.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    title: Mapped[str] = mapped_column(String500, nullable=False)

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    published_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True,
        comment="When the video was published upstream (UTC)"
    )

    duration_seconds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    thumbnail_url: Mapped[Optional[str]] = mapped_column(String500, nullable=True)

    view_count: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    status: Mapped[VideoStatus] = mapped_column(
        StrEnumType(VideoStatus),
        nullable=False,
        default=VideoStatus.PENDING,
        index=True,
    )

    # ================================
    # Relationships
    # ================================

    channel: Mapped[Optional["Channel"]] = relationship(
        "Channel",
        back_populates="videos",
        lazy="joined",
    )

    transcript: Mapped[Optional["Transcript"]] = relationship(
        "Transcript",
        back_populates="video",
        uselist=False,
        cascade="all, delete-orphan",
        lazy="raise",
    )

    tags: Mapped[list["Tag"]] = relationship(
        "Tag",
        secondary="video_tags",
        lazy="raise",
        order_by="Tag.name",
        viewonly=True,
    )

    def __repr__(self) -> str:
        return f"Video(id={self.id}, youtube_id='{self.youtube_id}', status={self.status})"

    def transition_to(self, new_status: VideoStatus) -> None:
        ensure_transition(f"Video {self.youtube_id}", self.status, new_status)
        self.status = VideoStatus(new_status)

    @property
    def is_completed(self) -> bool:
        return self.status == VideoStatus.COMPLETED


# ================================
# Transcript Model
# ================================

class Transcript(BaseModel):
    """
    Transcript for one video.

    raw_text is stored verbatim from acquisition. cleaned_text and summary
    come from enrichment and may be NULL when it was skipped or degraded.
    """

    __tablename__ = "transcripts"

    video_id: Mapped[int] = mapped_column(
        ForeignKey("videos.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )

    raw_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    cleaned_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    segments: Mapped[Optional[list]] = mapped_column(
        JSONB,
        nullable=True,
        comment="Timed segments: [{start, end, text}]"
    )

    source: Mapped[Optional[TranscriptSource]] = mapped_column(
        StrEnumType(TranscriptSource),
        nullable=True,
    )

    processing_status: Mapped[ProcessingStatus] = mapped_column(
        StrEnumType(ProcessingStatus),
        nullable=False,
        default=ProcessingStatus.PENDING,
        index=True,
    )

    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    video: Mapped["Video"] = relationship(
        "Video",
        back_populates="transcript",
        lazy="raise",
    )

    def transition_to(self, new_status: ProcessingStatus) -> None:
        ensure_transition(f"Transcript {self.video_id}", self.processing_status, new_status)
        self.processing_status = ProcessingStatus(new_status)

    @property
    def display_text(self) -> str:
        return self.cleaned_text or self.raw_text or ""


# ================================
# Tags
# ================================

class Tag(BaseModel):
    """Topic tag. ``name`` is canonical lowercase and globally unique."""

    __tablename__ = "tags"

    name: Mapped[str] = mapped_column(String100, unique=True, nullable=False)

    def __repr__(self) -> str:
        return f"Tag(id={self.id}, name='{self.name}')"


class VideoTag(Base):
    """Join row between Video and Tag. The composite key makes re-linking a no-op."""

    __tablename__ = "video_tags"

    video_id: Mapped[int] = mapped_column(
        ForeignKey("videos.id", ondelete="CASCADE"),
        primary_key=True,
    )

    tag_id: Mapped[int] = mapped_column(
        ForeignKey("tags.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    )


# ================================
# TranscriptChunk Model
# ================================

class TranscriptChunk(BaseModel):
    """
    Overlapping span of a video's transcript plus its embedding.

    Chunks are written once per enrichment generation and never updated in
    place: re-embedding deletes a video's chunks and inserts a new set.
    """

    __tablename__ = "transcript_chunks"

    video_id: Mapped[int] = mapped_column(
        ForeignKey("videos.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    chunk_index: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Order of this chunk within the video (0-indexed)"
    )

    content: Mapped[str] = mapped_column(Text, nullable=False)

    start_time: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    end_time: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    embedding = mapped_column(
        Vector(settings.EMBEDDING_DIMENSION),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint(
            'video_id',
            'chunk_index',
            name='uq_transcript_chunks_video_chunk_index'
        ),
    )

    def __repr__(self) -> str:
        preview = self.content[:50] + "..." if self.content else ""
        return (
            f"TranscriptChunk(id={self.id}, video_id={self.video_id}, "
            f"index={self.chunk_index}, content='{preview}')"
        )
