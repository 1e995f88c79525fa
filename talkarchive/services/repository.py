"""
Video Repository

The narrow query interface between the pipeline and PostgreSQL. Every
write here is keyed (upsert by youtube_id, video_id, tag name or
(video, tag) pair), so repeating it is safe and constraint races are
absorbed by ON CONFLICT rather than surfacing as errors.

Each repository wraps one AsyncSession. Concurrent work (search
strategies, a bounded ingestion pool) opens one repository per task with
``repository_scope``; an AsyncSession must never be shared across tasks.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Optional, Sequence

from sqlalchemy import case, delete, exists, func, insert, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from talkarchive.core.logging import get_logger
from talkarchive.models import (
    Channel,
    ErrorReport,
    ErrorReportType,
    IngestionLog,
    LogOutcome,
    ProcessingStatus,
    Tag,
    Transcript,
    TranscriptChunk,
    TranscriptSource,
    Video,
    VideoStatus,
    VideoTag,
)
from talkarchive.services.youtube import ChannelInfo, VideoInfo

logger = get_logger(__name__)

FTS_CONFIG = "english"


@dataclass(frozen=True)
class ChunkMatch:
    video_id: int
    content: str
    similarity: float
    start_time: Optional[float] = None


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class VideoRepository:
    """Store operations used by ingestion, embedding and search."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()

    # ========================================
    # Channels
    # ========================================

    async def get_channel(self, youtube_id: str) -> Optional[Channel]:
        result = await self.session.execute(
            select(Channel).where(Channel.youtube_id == youtube_id)
        )
        return result.scalar_one_or_none()

    async def upsert_channel(self, info: ChannelInfo) -> Channel:
        """Create the channel once; later calls only refresh metadata."""
        now = datetime.now(timezone.utc)
        stmt = pg_insert(Channel).values(
            youtube_id=info.channel_id,
            name=info.title,
            description=info.description,
            thumbnail_url=info.thumbnail_url,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[Channel.youtube_id],
            set_={
                "name": stmt.excluded.name,
                "description": stmt.excluded.description,
                "thumbnail_url": stmt.excluded.thumbnail_url,
                "updated_at": now,
            },
        ).returning(Channel)
        result = await self.session.execute(
            stmt, execution_options={"populate_existing": True}
        )
        return result.scalar_one()

    async def mark_channel_synced(self, channel: Channel, synced_at: datetime) -> None:
        channel.last_synced_at = synced_at
        await self.session.flush()

    # ========================================
    # Videos
    # ========================================

    async def get_video(self, youtube_id: str) -> Optional[Video]:
        result = await self.session.execute(
            select(Video).where(Video.youtube_id == youtube_id)
        )
        return result.scalar_one_or_none()

    async def upsert_video(self, info: VideoInfo, channel_id: Optional[int] = None) -> Video:
        """
        Insert or refresh a video's metadata.

        New rows start PENDING. ``status`` is never touched on conflict:
        status only changes through ``set_video_status``.
        """
        now = datetime.now(timezone.utc)
        metadata = {
            "title": info.title or info.video_id,
            "description": info.description,
            "published_at": info.published_at,
            "duration_seconds": info.duration_seconds,
            "thumbnail_url": info.thumbnail_url,
            "view_count": info.view_count,
        }
        stmt = pg_insert(Video).values(
            youtube_id=info.video_id,
            channel_id=channel_id,
            status=VideoStatus.PENDING,
            created_at=now,
            updated_at=now,
            **metadata,
        )
        update = {key: getattr(stmt.excluded, key) for key in metadata}
        update["updated_at"] = now
        if channel_id is not None:
            update["channel_id"] = stmt.excluded.channel_id

        stmt = stmt.on_conflict_do_update(
            index_elements=[Video.youtube_id],
            set_=update,
        ).returning(Video)
        result = await self.session.execute(
            stmt, execution_options={"populate_existing": True}
        )
        return result.scalar_one()

    async def set_video_status(self, video: Video, status: VideoStatus) -> Video:
        """
        Raises:
            InvalidStatusTransition: If the lifecycle forbids the change
        """
        video.transition_to(status)
        await self.session.flush()
        return video

    async def latest_published_at(self, channel_id: Optional[int] = None) -> Optional[datetime]:
        stmt = select(func.max(Video.published_at))
        if channel_id is not None:
            stmt = stmt.where(Video.channel_id == channel_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    # ========================================
    # Transcripts
    # ========================================

    async def get_transcript(self, video_id: int) -> Optional[Transcript]:
        result = await self.session.execute(
            select(Transcript).where(Transcript.video_id == video_id)
        )
        return result.scalar_one_or_none()

    async def _get_or_create_transcript(self, video_id: int) -> Transcript:
        now = datetime.now(timezone.utc)
        await self.session.execute(
            pg_insert(Transcript)
            .values(
                video_id=video_id,
                processing_status=ProcessingStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=[Transcript.video_id])
        )
        result = await self.session.execute(
            select(Transcript)
            .where(Transcript.video_id == video_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def upsert_transcript(
        self,
        video_id: int,
        processing_status: ProcessingStatus,
        **fields: Any,
    ) -> Transcript:
        """
        Create or update the video's transcript row and move its status.

        ``fields`` may contain raw_text, cleaned_text, summary, segments,
        source and error_message; only the keys given are written.

        Raises:
            InvalidStatusTransition: If the lifecycle forbids the change
        """
        allowed = {"raw_text", "cleaned_text", "summary", "segments", "source", "error_message"}
        unknown = set(fields) - allowed
        if unknown:
            raise TypeError(f"Unknown transcript fields: {sorted(unknown)}")

        transcript = await self._get_or_create_transcript(video_id)
        if transcript.processing_status != processing_status:
            transcript.transition_to(processing_status)
        for key, value in fields.items():
            if key == "source" and value is not None:
                value = TranscriptSource(value)
            setattr(transcript, key, value)
        await self.session.flush()
        return transcript

    async def update_enrichment(
        self,
        transcript: Transcript,
        cleaned_text: Optional[str],
        summary: Optional[str],
    ) -> Transcript:
        transcript.cleaned_text = cleaned_text
        transcript.summary = summary
        await self.session.flush()
        return transcript

    # ========================================
    # Tags
    # ========================================

    async def upsert_tags(self, names: Sequence[str]) -> dict[str, int]:
        """
        Upsert tags by unique name in one statement; returns name -> id.

        The no-op DO UPDATE makes RETURNING include rows that already existed.
        """
        unique_names = list(dict.fromkeys(name for name in names if name))
        if not unique_names:
            return {}

        now = datetime.now(timezone.utc)
        stmt = pg_insert(Tag.__table__).values(
            [{"name": name, "created_at": now, "updated_at": now} for name in unique_names]
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["name"],
            set_={"name": stmt.excluded.name},
        ).returning(Tag.__table__.c.id, Tag.__table__.c.name)
        result = await self.session.execute(stmt)
        return {row.name: row.id for row in result}

    async def link_tags(self, video_id: int, tag_ids: Sequence[int]) -> None:
        """Insert (video, tag) join rows; existing pairs are left alone."""
        if not tag_ids:
            return
        await self.session.execute(
            pg_insert(VideoTag.__table__)
            .values([{"video_id": video_id, "tag_id": tag_id} for tag_id in dict.fromkeys(tag_ids)])
            .on_conflict_do_nothing(index_elements=["video_id", "tag_id"])
        )

    async def list_tags(self) -> list[tuple[str, int]]:
        """Tag names with the number of published videos carrying them."""
        stmt = (
            select(Tag.name, func.count(Video.id).label("video_count"))
            .join(VideoTag, VideoTag.tag_id == Tag.id)
            .join(Video, Video.id == VideoTag.video_id)
            .where(Video.status == VideoStatus.COMPLETED)
            .group_by(Tag.name)
            .order_by(func.count(Video.id).desc(), Tag.name)
        )
        result = await self.session.execute(stmt)
        return [(row.name, row.video_count) for row in result]

    # ========================================
    # Ingestion Log
    # ========================================

    async def log_step(
        self,
        video_id: Optional[int],
        step: str,
        status: LogOutcome,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Append a log row and commit.

        Committing here also makes everything the step wrote durable, so a
        crash after this point resumes from the next step.
        """
        self.session.add(
            IngestionLog(video_id=video_id, step=step, status=status, details=details or None)
        )
        await self.session.commit()

    # ========================================
    # Chunks
    # ========================================

    async def count_chunks(self, video_id: int) -> int:
        result = await self.session.execute(
            select(func.count(TranscriptChunk.id)).where(TranscriptChunk.video_id == video_id)
        )
        return result.scalar_one()

    async def store_chunks(
        self,
        video_id: int,
        rows: Sequence[dict[str, Any]],
        replace: bool = False,
    ) -> int:
        """
        Bulk insert one generation of chunks in a single transaction.

        With ``replace`` the video's previous chunks are deleted first.
        """
        if replace:
            await self.session.execute(
                delete(TranscriptChunk).where(TranscriptChunk.video_id == video_id)
            )
        if rows:
            now = datetime.now(timezone.utc)
            await self.session.execute(
                insert(TranscriptChunk),
                [{**row, "video_id": video_id, "created_at": now, "updated_at": now} for row in rows],
            )
        await self.session.commit()
        return len(rows)

    # ========================================
    # Search
    # ========================================

    async def search_by_tag(self, query: str, limit: int) -> list[Video]:
        """Videos linked to tags equal to or prefixed by ``query``; exact matches first."""
        term = query.strip().lower()
        if not term:
            return []

        rank = func.min(case((Tag.name == term, 0), else_=1)).label("rank")
        matches = (
            select(VideoTag.video_id, rank)
            .join(Tag, Tag.id == VideoTag.tag_id)
            .where(or_(Tag.name == term, Tag.name.like(f"{escape_like(term)}%", escape="\\")))
            .group_by(VideoTag.video_id)
            .subquery()
        )
        stmt = (
            select(Video)
            .join(matches, matches.c.video_id == Video.id)
            .where(Video.status == VideoStatus.COMPLETED)
            .order_by(matches.c.rank, Video.published_at.desc().nulls_last(), Video.id)
            .limit(limit)
            .options(selectinload(Video.transcript))
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def match_chunks(
        self,
        embedding: Sequence[float],
        threshold: float,
        count: int,
    ) -> list[ChunkMatch]:
        """
        Nearest chunks by cosine similarity above ``threshold``, best first.

        Ties are broken by video id and chunk index so results are stable.
        """
        distance = TranscriptChunk.embedding.cosine_distance(embedding)
        similarity = (1 - distance).label("similarity")
        stmt = (
            select(
                TranscriptChunk.video_id,
                TranscriptChunk.content,
                TranscriptChunk.start_time,
                similarity,
            )
            .join(Video, Video.id == TranscriptChunk.video_id)
            .where(Video.status == VideoStatus.COMPLETED)
            .where((1 - distance) > threshold)
            .order_by(distance, TranscriptChunk.video_id, TranscriptChunk.chunk_index)
            .limit(count)
        )
        result = await self.session.execute(stmt)
        return [
            ChunkMatch(
                video_id=row.video_id,
                content=row.content,
                similarity=float(row.similarity),
                start_time=row.start_time,
            )
            for row in result
        ]

    async def lexical_search(self, query: str, limit: int) -> list[Video]:
        """
        Full-text search over transcript raw text plus substring match on
        title/description, ordered by ts_rank over a weighted document.
        """
        term = query.strip()
        if not term:
            return []

        tsquery = func.websearch_to_tsquery(FTS_CONFIG, term)
        transcript_vector = func.to_tsvector(FTS_CONFIG, func.coalesce(Transcript.raw_text, ""))
        document = (
            func.setweight(func.to_tsvector(FTS_CONFIG, func.coalesce(Video.title, "")), "A")
            .op("||")(func.setweight(func.to_tsvector(FTS_CONFIG, func.coalesce(Video.description, "")), "B"))
            .op("||")(func.setweight(transcript_vector, "D"))
        )
        pattern = f"%{escape_like(term)}%"

        stmt = (
            select(Video)
            .outerjoin(Transcript, Transcript.video_id == Video.id)
            .where(Video.status == VideoStatus.COMPLETED)
            .where(
                or_(
                    transcript_vector.op("@@")(tsquery),
                    Video.title.ilike(pattern, escape="\\"),
                    Video.description.ilike(pattern, escape="\\"),
                )
            )
            .order_by(
                func.ts_rank(document, tsquery).desc(),
                Video.published_at.desc().nulls_last(),
                Video.id,
            )
            .limit(limit)
            .options(selectinload(Video.transcript))
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_completed_videos(self, video_ids: Sequence[int]) -> dict[int, Video]:
        if not video_ids:
            return {}
        result = await self.session.execute(
            select(Video)
            .where(Video.id.in_(list(video_ids)), Video.status == VideoStatus.COMPLETED)
            .options(selectinload(Video.transcript))
        )
        return {video.id: video for video in result.scalars().all()}

    # ========================================
    # Catalog
    # ========================================

    async def list_completed_videos(
        self,
        limit: int,
        offset: int = 0,
        channel_youtube_id: Optional[str] = None,
    ) -> tuple[list[Video], int]:
        filters = [Video.status == VideoStatus.COMPLETED]
        if channel_youtube_id:
            filters.append(
                Video.channel_id.in_(
                    select(Channel.id).where(Channel.youtube_id == channel_youtube_id)
                )
            )

        total = (
            await self.session.execute(select(func.count(Video.id)).where(*filters))
        ).scalar_one()

        result = await self.session.execute(
            select(Video)
            .where(*filters)
            .order_by(Video.published_at.desc().nulls_last(), Video.id.desc())
            .limit(limit)
            .offset(offset)
            .options(selectinload(Video.tags))
        )
        return list(result.scalars().all()), total

    async def get_video_detail(self, youtube_id: str) -> Optional[Video]:
        result = await self.session.execute(
            select(Video)
            .where(Video.youtube_id == youtube_id)
            .options(selectinload(Video.transcript), selectinload(Video.tags))
        )
        return result.scalar_one_or_none()

    async def create_error_report(
        self,
        video_id: int,
        report_type: ErrorReportType,
        description: str,
        timestamp_seconds: Optional[int] = None,
    ) -> ErrorReport:
        report = ErrorReport(
            video_id=video_id,
            report_type=report_type,
            description=description,
            timestamp_seconds=timestamp_seconds,
        )
        self.session.add(report)
        await self.session.commit()
        return report

    # ========================================
    # Backfills
    # ========================================

    async def transcripts_needing_enrichment(
        self,
        limit: int,
        youtube_id: Optional[str] = None,
        force: bool = False,
    ) -> list[tuple[Video, Transcript]]:
        stmt = (
            select(Video, Transcript)
            .join(Transcript, Transcript.video_id == Video.id)
            .where(Video.status == VideoStatus.COMPLETED, Transcript.raw_text.is_not(None))
        )
        if youtube_id:
            stmt = stmt.where(Video.youtube_id == youtube_id)
        if not force:
            stmt = stmt.where(Transcript.summary.is_(None))
        stmt = stmt.order_by(Video.published_at.desc().nulls_last(), Video.id).limit(limit)
        result = await self.session.execute(stmt)
        return [(row[0], row[1]) for row in result.all()]

    async def videos_needing_embeddings(
        self,
        limit: int,
        youtube_id: Optional[str] = None,
        force: bool = False,
    ) -> list[tuple[Video, Transcript]]:
        stmt = (
            select(Video, Transcript)
            .join(Transcript, Transcript.video_id == Video.id)
            .where(Video.status == VideoStatus.COMPLETED)
        )
        if youtube_id:
            stmt = stmt.where(Video.youtube_id == youtube_id)
        if not force:
            stmt = stmt.where(
                ~exists(select(TranscriptChunk.id).where(TranscriptChunk.video_id == Video.id))
            )
        stmt = stmt.order_by(Video.published_at.desc().nulls_last(), Video.id).limit(limit)
        result = await self.session.execute(stmt)
        return [(row[0], row[1]) for row in result.all()]


RepositoryFactory = Callable[[], Any]


def repository_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> RepositoryFactory:
    """
    Build a factory of ``async with`` scopes, each yielding a repository on
    its own session. Uncommitted work is rolled back when the scope exits
    with an error.
    """

    @asynccontextmanager
    async def scope() -> AsyncIterator[VideoRepository]:
        async with session_factory() as session:
            try:
                yield VideoRepository(session)
            except BaseException:
                await session.rollback()
                raise

    return scope
