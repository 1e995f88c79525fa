"""
Ingestion Orchestrator

Drives one video, or a whole channel, from a YouTube id to a stored,
searchable transcript:

    metadata → acquire → enrich → tags → transcript → embed → complete

Every step appends an IngestionLog row (which also commits the step's
writes) before the next one starts, so an interrupted run leaves the
video in PROCESSING and the next run picks up from what was saved. Tags
are linked before the transcript is marked COMPLETED, so a resumed run
never has to derive them again. An unexpected error marks the video
FAILED before it propagates.

Idempotency rests on one check: a video already COMPLETED is skipped
without any writes. Two concurrent runs on the same unfinished video can
both do the work; every write is an upsert, so the outcome is the same.
"""

import asyncio
import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Sequence

from talkarchive.core.config import settings
from talkarchive.core.exceptions import NoTranscriptAvailable, NotFoundError, PipelineError
from talkarchive.core.logging import get_logger
from talkarchive.models import LogOutcome, ProcessingStatus, Transcript, Video, VideoStatus
from talkarchive.services.embedding_writer import (
    EmbeddingOutcome,
    EmbeddingStatus,
    EmbeddingStoreWriter,
)
from talkarchive.services.enrichment import EnrichmentProcessor
from talkarchive.services.processors.normalizer import NormalizeOptions, TimedSegment, normalize
from talkarchive.services.repository import RepositoryFactory, VideoRepository
from talkarchive.services.transcript_service import TranscriptAcquirer
from talkarchive.services.youtube import VideoInfo, YouTubeService

logger = get_logger(__name__)

# Input for the cleaning model: decoded and de-filled, but left as one
# block so the model does its own paragraphing
MODEL_INPUT_OPTIONS = NormalizeOptions(add_paragraphs=False)


class Step(str, enum.Enum):
    METADATA = "metadata"
    START = "start"
    ACQUIRE = "acquire"
    ENRICH = "enrich"
    TRANSCRIPT = "transcript"
    TAGS = "tags"
    EMBED = "embed"
    COMPLETE = "complete"
    CHANNEL_SYNC = "channel_sync"

    def __str__(self) -> str:
        return self.value


class VideoOutcome(str, enum.Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"
    DRY_RUN = "dry_run"

    def __str__(self) -> str:
        return self.value


@dataclass
class IngestOptions:
    skip_enrichment: bool = False
    skip_embeddings: bool = False
    dry_run: bool = False


@dataclass
class VideoIngestionResult:
    youtube_id: str
    outcome: VideoOutcome
    title: Optional[str] = None
    source: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    degraded_steps: dict[str, str] = field(default_factory=dict)
    chunk_count: int = 0
    error: Optional[str] = None


@dataclass
class ChannelIngestionResult:
    channel_id: str
    since: datetime
    discovered: int = 0
    results: list[VideoIngestionResult] = field(default_factory=list)

    def count(self, outcome: VideoOutcome) -> int:
        return sum(1 for result in self.results if result.outcome == outcome)

    @property
    def completed(self) -> int:
        return self.count(VideoOutcome.COMPLETED)

    @property
    def skipped(self) -> int:
        return self.count(VideoOutcome.SKIPPED)

    @property
    def failed(self) -> int:
        return self.count(VideoOutcome.FAILED)

    def summary(self) -> dict[str, Any]:
        return {
            "channel_id": self.channel_id,
            "since": self.since.isoformat(),
            "discovered": self.discovered,
            "completed": self.completed,
            "skipped": self.skipped,
            "failed": self.failed,
        }


def segments_from_json(raw: Optional[Sequence[dict]]) -> list[TimedSegment]:
    return [
        TimedSegment(text=item.get("text", ""), start=float(item["start"]), end=float(item["end"]))
        for item in raw or []
        if "start" in item and "end" in item
    ]


class IngestionOrchestrator:
    """
    Usage:
    ------
    orchestrator = IngestionOrchestrator(
        repository_factory=repository_scope(session_factory),
        youtube=YouTubeService(),
        acquirer=TranscriptAcquirer(CaptionProvider(), WhisperTranscriber()),
        enricher=EnrichmentProcessor(LLMClient.from_settings()),
        embedding_writer=EmbeddingStoreWriter(embedder),
    )
    result = await orchestrator.ingest_video("dQw4w9WgXcQ")
    """

    def __init__(
        self,
        repository_factory: RepositoryFactory,
        acquirer: TranscriptAcquirer,
        youtube: Optional[YouTubeService] = None,
        enricher: Optional[EnrichmentProcessor] = None,
        embedding_writer: Optional[EmbeddingStoreWriter] = None,
        lookback_days: Optional[int] = None,
    ):
        self.repository_factory = repository_factory
        self.acquirer = acquirer
        self.youtube = youtube
        self.enricher = enricher
        self.embedding_writer = embedding_writer
        self.lookback_days = lookback_days or settings.INGEST_LOOKBACK_DAYS

    # ========================================
    # Single Video
    # ========================================

    async def ingest_video(
        self,
        youtube_id: str,
        options: Optional[IngestOptions] = None,
        info: Optional[VideoInfo] = None,
        channel_pk: Optional[int] = None,
    ) -> VideoIngestionResult:
        options = options or IngestOptions()
        try:
            async with self.repository_factory() as repo:
                return await self._ingest_video(repo, youtube_id, options, info, channel_pk)
        except Exception as e:
            if not options.dry_run:
                await self._mark_failed(youtube_id, e)
            raise

    async def _mark_failed(self, youtube_id: str, error: Exception) -> None:
        """Release a video left in PROCESSING by an unexpected error."""
        try:
            async with self.repository_factory() as repo:
                video = await repo.get_video(youtube_id)
                if video is None or video.status != VideoStatus.PROCESSING:
                    return
                transcript = await repo.get_transcript(video.id)
                # A completed transcript is kept so the next run resumes after it
                if transcript is not None and transcript.processing_status == ProcessingStatus.PROCESSING:
                    await repo.upsert_transcript(video.id, ProcessingStatus.FAILED, error_message=str(error))
                await repo.set_video_status(video, VideoStatus.FAILED)
                await repo.log_step(
                    video.id,
                    Step.COMPLETE,
                    LogOutcome.FAILED,
                    {"error": str(error), "error_type": type(error).__name__},
                )
        except Exception as mark_error:
            logger.error(
                "mark_failed_error",
                youtube_id=youtube_id,
                error=str(mark_error),
                original_error=str(error),
                exc_info=True,
            )

    async def _ingest_video(
        self,
        repo: VideoRepository,
        youtube_id: str,
        options: IngestOptions,
        info: Optional[VideoInfo],
        channel_pk: Optional[int],
    ) -> VideoIngestionResult:
        log = logger.bind(youtube_id=youtube_id)

        # 1. Completed videos are never reprocessed
        existing = await repo.get_video(youtube_id)
        if existing is not None and existing.is_completed:
            log.info("video_already_completed")
            return VideoIngestionResult(youtube_id, VideoOutcome.SKIPPED, title=existing.title)

        # 2. Metadata, then claim the video
        if info is None:
            try:
                info = await self._fetch_metadata(youtube_id)
            except NotFoundError as e:
                log.warning("video_metadata_not_found", error=str(e))
                if not options.dry_run:
                    await repo.log_step(
                        existing.id if existing else None,
                        Step.METADATA,
                        LogOutcome.FAILED,
                        {"youtube_id": youtube_id, "error": str(e)},
                    )
                return VideoIngestionResult(youtube_id, VideoOutcome.FAILED, error=str(e))

        if options.dry_run:
            log.info("dry_run_would_ingest", title=info.title)
            return VideoIngestionResult(youtube_id, VideoOutcome.DRY_RUN, title=info.title)

        video = await repo.upsert_video(info, channel_pk)
        await repo.set_video_status(video, VideoStatus.PROCESSING)
        transcript = await repo.get_transcript(video.id)
        resumable = (
            transcript is not None
            and transcript.processing_status == ProcessingStatus.COMPLETED
            and bool(transcript.raw_text)
        )
        if not resumable:
            transcript = await repo.upsert_transcript(video.id, ProcessingStatus.PROCESSING)
        await repo.log_step(video.id, Step.START, LogOutcome.COMPLETED, {"resumed": resumable})

        if resumable:
            # A previous run stored the transcript but stopped before completing
            log.info("resuming_after_transcript")
            await repo.log_step(video.id, Step.ACQUIRE, LogOutcome.SKIPPED, {"reason": "resumed"})
            return await self._finish(repo, video, transcript, options, tags=[], degraded={})

        # 3. Acquire
        try:
            acquired = await self.acquirer.acquire(youtube_id)
        except NoTranscriptAvailable as e:
            log.warning("transcript_unavailable", attempts=e.attempts)
            await repo.upsert_transcript(video.id, ProcessingStatus.FAILED, error_message=str(e))
            await repo.set_video_status(video, VideoStatus.FAILED)
            await repo.log_step(video.id, Step.ACQUIRE, LogOutcome.FAILED, {"attempts": e.attempts})
            return VideoIngestionResult(youtube_id, VideoOutcome.FAILED, title=video.title, error=str(e))
        except Exception as e:
            log.error("transcript_acquisition_error", error=str(e), exc_info=True)
            await repo.upsert_transcript(video.id, ProcessingStatus.FAILED, error_message=str(e))
            await repo.set_video_status(video, VideoStatus.FAILED)
            await repo.log_step(
                video.id,
                Step.ACQUIRE,
                LogOutcome.FAILED,
                {"error": str(e), "error_type": type(e).__name__},
            )
            return VideoIngestionResult(youtube_id, VideoOutcome.FAILED, title=video.title, error=str(e))

        transcript = await repo.upsert_transcript(
            video.id,
            ProcessingStatus.PROCESSING,
            raw_text=acquired.text,
            segments=acquired.segments_as_json() or None,
            source=acquired.source,
            error_message=None,
        )
        await repo.log_step(
            video.id,
            Step.ACQUIRE,
            LogOutcome.COMPLETED,
            {
                "source": str(acquired.source),
                "characters": len(acquired.text),
                "segments": len(acquired.segments),
                "language": acquired.language,
            },
        )

        # 4. Enrich
        cleaned_text, summary, tags, degraded = await self._enrich(repo, video, acquired.text, options)

        # 5. Tags, before the transcript is marked completed
        await self._link_tags(repo, video, tags)

        # 6. Transcript complete
        transcript = await repo.upsert_transcript(
            video.id,
            ProcessingStatus.COMPLETED,
            cleaned_text=cleaned_text,
            summary=summary or None,
        )
        await repo.log_step(video.id, Step.TRANSCRIPT, LogOutcome.COMPLETED, {"source": str(acquired.source)})

        result = await self._finish(repo, video, transcript, options, tags=tags, degraded=degraded)
        result.source = str(acquired.source)
        return result

    async def _fetch_metadata(self, youtube_id: str) -> VideoInfo:
        if self.youtube is None:
            return VideoInfo(video_id=youtube_id, title=youtube_id)
        return await self.youtube.get_video(youtube_id)

    async def _enrich(
        self,
        repo: VideoRepository,
        video: Video,
        raw_text: str,
        options: IngestOptions,
    ) -> tuple[str, str, list[str], dict[str, str]]:
        if options.skip_enrichment or self.enricher is None:
            await repo.log_step(video.id, Step.ENRICH, LogOutcome.SKIPPED, {"reason": "disabled"})
            return normalize(raw_text), "", [], {}

        enriched = await self.enricher.enrich(normalize(raw_text, MODEL_INPUT_OPTIONS))
        await repo.log_step(
            video.id,
            Step.ENRICH,
            LogOutcome.DEGRADED if enriched.degraded else LogOutcome.COMPLETED,
            {
                "degraded_steps": enriched.degraded_steps,
                "summary_characters": len(enriched.summary),
                "tags": len(enriched.tags),
            },
        )
        cleaned = enriched.cleaned_text or normalize(raw_text)
        return cleaned, enriched.summary, enriched.tags, enriched.degraded_steps

    async def _link_tags(self, repo: VideoRepository, video: Video, tags: list[str]) -> None:
        if tags:
            tag_ids = await repo.upsert_tags(tags)
            await repo.link_tags(video.id, list(tag_ids.values()))
            await repo.log_step(video.id, Step.TAGS, LogOutcome.COMPLETED, {"tags": tags})
        else:
            await repo.log_step(video.id, Step.TAGS, LogOutcome.SKIPPED, {"reason": "no tags"})

    async def _finish(
        self,
        repo: VideoRepository,
        video: Video,
        transcript: Transcript,
        options: IngestOptions,
        tags: list[str],
        degraded: dict[str, str],
    ) -> VideoIngestionResult:
        # Embedding failures are logged but never fail the video
        outcome = await self._embed(repo, video, transcript, options)

        # 7. Complete
        await repo.set_video_status(video, VideoStatus.COMPLETED)
        await repo.log_step(video.id, Step.COMPLETE, LogOutcome.COMPLETED, None)
        logger.info(
            "video_ingested",
            youtube_id=video.youtube_id,
            source=str(transcript.source) if transcript.source else None,
            tags=len(tags),
            chunks=outcome.chunk_count if outcome else 0,
            degraded=list(degraded),
        )

        return VideoIngestionResult(
            youtube_id=video.youtube_id,
            outcome=VideoOutcome.COMPLETED,
            title=video.title,
            source=str(transcript.source) if transcript.source else None,
            tags=tags,
            degraded_steps=degraded,
            chunk_count=outcome.chunk_count if outcome else 0,
        )

    async def _embed(
        self,
        repo: VideoRepository,
        video: Video,
        transcript: Transcript,
        options: IngestOptions,
        force: bool = False,
    ) -> Optional[EmbeddingOutcome]:
        if options.skip_embeddings or self.embedding_writer is None:
            await repo.log_step(video.id, Step.EMBED, LogOutcome.SKIPPED, {"reason": "disabled"})
            return None

        outcome = await self.embedding_writer.embed_and_store(
            repo,
            video.id,
            transcript.display_text,
            segments=segments_from_json(transcript.segments),
            force=force,
        )
        log_outcome = {
            EmbeddingStatus.STORED: LogOutcome.COMPLETED,
            EmbeddingStatus.SKIPPED: LogOutcome.SKIPPED,
            EmbeddingStatus.NO_CONTENT: LogOutcome.SKIPPED,
            EmbeddingStatus.FAILED: LogOutcome.FAILED,
        }[outcome.status]
        await repo.log_step(video.id, Step.EMBED, log_outcome, outcome.as_details())
        return outcome

    # ========================================
    # Channel Batch
    # ========================================

    async def ingest_channel(
        self,
        channel_id: str,
        limit: Optional[int] = None,
        since: Optional[datetime] = None,
        concurrency: Optional[int] = None,
        options: Optional[IngestOptions] = None,
    ) -> ChannelIngestionResult:
        """
        Ingest uploads newer than the newest video already stored for the
        channel (or the last ``lookback_days`` days for a new channel).

        Videos run oldest first, one at a time unless ``concurrency`` > 1,
        in which case a semaphore bounds the number in flight.
        """
        if self.youtube is None:
            raise ValueError("Channel ingestion requires a YouTubeService")
        options = options or IngestOptions()
        concurrency = max(1, concurrency or settings.INGEST_CONCURRENCY)

        channel_info = await self.youtube.get_channel(channel_id)
        async with self.repository_factory() as repo:
            if options.dry_run:
                channel = await repo.get_channel(channel_id)
            else:
                channel = await repo.upsert_channel(channel_info)
                await repo.commit()
            channel_pk = channel.id if channel else None

            if since is None:
                latest = await repo.latest_published_at(channel_pk) if channel_pk else None
                since = latest or datetime.now(timezone.utc) - timedelta(days=self.lookback_days)

        log = logger.bind(channel_id=channel_id, since=since.isoformat())
        listed = await self.youtube.list_channel_videos(
            channel_id, published_after=since, max_results=limit, channel=channel_info
        )
        details = await self.youtube.get_videos_details([video.video_id for video in listed])
        oldest_first = sorted(
            (details.get(video.video_id, video) for video in listed),
            key=lambda video: video.published_at or datetime.min.replace(tzinfo=timezone.utc),
        )
        log.info("channel_videos_discovered", count=len(oldest_first))

        result = ChannelIngestionResult(channel_id=channel_id, since=since, discovered=len(oldest_first))

        if concurrency == 1:
            for info in oldest_first:
                result.results.append(await self._ingest_safely(info, options, channel_pk))
        else:
            semaphore = asyncio.Semaphore(concurrency)

            async def worker(info: VideoInfo) -> VideoIngestionResult:
                async with semaphore:
                    return await self._ingest_safely(info, options, channel_pk)

            result.results.extend(await asyncio.gather(*(worker(info) for info in oldest_first)))

        if not options.dry_run:
            async with self.repository_factory() as repo:
                channel = await repo.get_channel(channel_id)
                if channel is not None:
                    await repo.mark_channel_synced(channel, datetime.now(timezone.utc))
                await repo.log_step(None, Step.CHANNEL_SYNC, LogOutcome.COMPLETED, result.summary())

        log.info("channel_ingested", **result.summary())
        return result

    async def _ingest_safely(
        self,
        info: VideoInfo,
        options: IngestOptions,
        channel_pk: Optional[int],
    ) -> VideoIngestionResult:
        """One video's failure must not stop the rest of the batch."""
        try:
            return await self.ingest_video(info.video_id, options, info=info, channel_pk=channel_pk)
        except Exception as e:
            logger.error(
                "video_ingestion_error",
                youtube_id=info.video_id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=not isinstance(e, PipelineError),
            )
            return VideoIngestionResult(info.video_id, VideoOutcome.FAILED, title=info.title, error=str(e))

    # ========================================
    # Backfills
    # ========================================

    async def enrich_pending(
        self,
        limit: int = 10,
        youtube_id: Optional[str] = None,
        force: bool = False,
    ) -> list[VideoIngestionResult]:
        """
        Enrich completed transcripts that have no summary yet (all of them
        with ``force``). Re-enriched videos are re-embedded.
        """
        if self.enricher is None:
            raise ValueError("Enrichment backfill requires an EnrichmentProcessor")

        results = []
        async with self.repository_factory() as repo:
            pending = await repo.transcripts_needing_enrichment(limit, youtube_id, force)
            logger.info("enrichment_backfill_started", count=len(pending), force=force)

            for video, transcript in pending:
                enriched = await self.enricher.enrich(normalize(transcript.raw_text, MODEL_INPUT_OPTIONS))
                await repo.update_enrichment(
                    transcript,
                    cleaned_text=enriched.cleaned_text or normalize(transcript.raw_text),
                    summary=enriched.summary or None,
                )
                if enriched.tags:
                    tag_ids = await repo.upsert_tags(enriched.tags)
                    await repo.link_tags(video.id, list(tag_ids.values()))
                await repo.log_step(
                    video.id,
                    Step.ENRICH,
                    LogOutcome.DEGRADED if enriched.degraded else LogOutcome.COMPLETED,
                    {"backfill": True, "degraded_steps": enriched.degraded_steps, "tags": enriched.tags},
                )

                outcome = await self._embed(repo, video, transcript, IngestOptions(), force=True)
                results.append(
                    VideoIngestionResult(
                        youtube_id=video.youtube_id,
                        outcome=VideoOutcome.COMPLETED,
                        title=video.title,
                        tags=enriched.tags,
                        degraded_steps=enriched.degraded_steps,
                        chunk_count=outcome.chunk_count if outcome else 0,
                    )
                )
        return results

    async def embed_pending(
        self,
        limit: int = 50,
        youtube_id: Optional[str] = None,
        force: bool = False,
    ) -> list[tuple[str, EmbeddingOutcome]]:
        """Embed completed videos that have no chunks (rebuild all with ``force``)."""
        if self.embedding_writer is None:
            raise ValueError("Embedding backfill requires an EmbeddingStoreWriter")

        results = []
        async with self.repository_factory() as repo:
            pending = await repo.videos_needing_embeddings(limit, youtube_id, force)
            logger.info("embedding_backfill_started", count=len(pending), force=force)
            for video, transcript in pending:
                outcome = await self._embed(repo, video, transcript, IngestOptions(), force=force)
                results.append((video.youtube_id, outcome))
        return results
