"""
Pytest configuration and fixtures.

No test here needs PostgreSQL, Redis or a model download:

- ``FakeStore`` keeps channels, videos, transcripts, tags, chunks and log
  rows in memory, and ``FakeRepository`` implements the same methods as
  ``VideoRepository`` on top of it
- ``KeywordEmbedder`` turns text into a bag-of-keywords vector so cosine
  similarity is predictable
- ``ScriptedLLM`` answers each enrichment prompt from a script

References:
-----------
- Pytest Fixtures: https://docs.pytest.org/en/stable/fixture.html
- FastAPI Testing: https://fastapi.tiangolo.com/tutorial/testing/
"""

import math
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Sequence

import pytest

from talkarchive.core.exceptions import ProviderUnavailable
from talkarchive.models import (
    Channel,
    ErrorReport,
    ErrorReportStatus,
    ProcessingStatus,
    Tag,
    Transcript,
    TranscriptSource,
    Video,
    VideoStatus,
)
from talkarchive.services.enrichment import (
    CLEANING_SYSTEM_PROMPT,
    SUMMARY_SYSTEM_PROMPT,
    TAGS_SYSTEM_PROMPT,
)
from talkarchive.services.repository import ChunkMatch
from talkarchive.services.transcript_service import TranscriptResult
from talkarchive.services.processors.normalizer import TimedSegment
from talkarchive.services.youtube import ChannelInfo, VideoInfo

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


# ================================
# In-memory Store
# ================================

@dataclass
class LoggedStep:
    video_id: Optional[int]
    step: str
    status: Any
    details: Optional[dict]


@dataclass
class FakeStore:
    channels: dict[str, Channel] = field(default_factory=dict)
    videos: dict[str, Video] = field(default_factory=dict)
    transcripts: dict[int, Transcript] = field(default_factory=dict)
    tags: dict[str, Tag] = field(default_factory=dict)
    video_tags: set[tuple[int, int]] = field(default_factory=set)
    chunks: dict[int, list[dict]] = field(default_factory=dict)
    logs: list[LoggedStep] = field(default_factory=list)
    reports: list[ErrorReport] = field(default_factory=list)
    # Every mutation of a Video or Transcript row, for idempotence checks
    writes: list[tuple[str, Any]] = field(default_factory=list)
    commits: int = 0
    failing_methods: set[str] = field(default_factory=set)
    _next_id: int = 0

    def next_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def repository_factory(self):
        @asynccontextmanager
        async def scope():
            yield FakeRepository(self)

        return scope

    def video_by_id(self, video_id: int) -> Optional[Video]:
        return next((v for v in self.videos.values() if v.id == video_id), None)

    def steps_for(self, youtube_id: str) -> list[tuple[str, str]]:
        video = self.videos[youtube_id]
        return [(log.step, str(log.status)) for log in self.logs if log.video_id == video.id]

    # ----- seeding helpers -----

    def add_video(
        self,
        youtube_id: str,
        title: str = "",
        status: VideoStatus = VideoStatus.COMPLETED,
        published_days: int = 0,
        raw_text: Optional[str] = None,
        cleaned_text: Optional[str] = None,
        summary: Optional[str] = None,
        tags: Sequence[str] = (),
        description: Optional[str] = None,
    ) -> Video:
        now = datetime.now(timezone.utc)
        video = Video(
            id=self.next_id(),
            youtube_id=youtube_id,
            title=title or f"Talk {youtube_id}",
            description=description,
            published_at=BASE_TIME + timedelta(days=published_days),
            status=status,
            created_at=now,
            updated_at=now,
        )
        self.videos[youtube_id] = video
        if raw_text is not None:
            transcript = Transcript(
                id=self.next_id(),
                video_id=video.id,
                raw_text=raw_text,
                cleaned_text=cleaned_text,
                summary=summary,
                source=TranscriptSource.EXTRACTOR,
                processing_status=(
                    ProcessingStatus.COMPLETED if status == VideoStatus.COMPLETED else ProcessingStatus.PROCESSING
                ),
            )
            self.transcripts[video.id] = transcript
            video.transcript = transcript
        for name in tags:
            tag = self.tags.get(name) or Tag(id=self.next_id(), name=name)
            self.tags[name] = tag
            self.video_tags.add((video.id, tag.id))
        return video

    def add_chunk(self, video: Video, content: str, embedding: list[float]) -> None:
        rows = self.chunks.setdefault(video.id, [])
        rows.append({
            "chunk_index": len(rows),
            "content": content,
            "start_time": None,
            "end_time": None,
            "embedding": embedding,
        })


def cosine(a: Sequence[float], b: Sequence[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class FakeRepository:
    """Same surface as VideoRepository, backed by a FakeStore."""

    def __init__(self, store: FakeStore):
        self.store = store

    def _check(self, method: str) -> None:
        if method in self.store.failing_methods:
            raise RuntimeError(f"{method} failed")

    async def commit(self) -> None:
        self.store.commits += 1

    async def rollback(self) -> None:
        pass

    # ----- channels -----

    async def get_channel(self, youtube_id: str) -> Optional[Channel]:
        return self.store.channels.get(youtube_id)

    async def upsert_channel(self, info: ChannelInfo) -> Channel:
        channel = self.store.channels.get(info.channel_id)
        if channel is None:
            channel = Channel(id=self.store.next_id(), youtube_id=info.channel_id)
            self.store.channels[info.channel_id] = channel
        channel.name = info.title
        channel.description = info.description
        channel.thumbnail_url = info.thumbnail_url
        return channel

    async def mark_channel_synced(self, channel: Channel, synced_at: datetime) -> None:
        channel.last_synced_at = synced_at

    # ----- videos -----

    async def get_video(self, youtube_id: str) -> Optional[Video]:
        return self.store.videos.get(youtube_id)

    async def upsert_video(self, info: VideoInfo, channel_id: Optional[int] = None) -> Video:
        video = self.store.videos.get(info.video_id)
        if video is None:
            video = Video(id=self.store.next_id(), youtube_id=info.video_id, status=VideoStatus.PENDING)
            self.store.videos[info.video_id] = video
        video.title = info.title or info.video_id
        video.description = info.description
        video.published_at = info.published_at
        video.duration_seconds = info.duration_seconds
        video.view_count = info.view_count
        if channel_id is not None:
            video.channel_id = channel_id
        self.store.writes.append(("video", info.video_id))
        return video

    async def set_video_status(self, video: Video, status: VideoStatus) -> Video:
        video.transition_to(status)
        self.store.writes.append(("video_status", (video.youtube_id, str(status))))
        return video

    async def latest_published_at(self, channel_id: Optional[int] = None) -> Optional[datetime]:
        dates = [
            v.published_at for v in self.store.videos.values()
            if v.published_at and (channel_id is None or v.channel_id == channel_id)
        ]
        return max(dates) if dates else None

    # ----- transcripts -----

    async def get_transcript(self, video_id: int) -> Optional[Transcript]:
        return self.store.transcripts.get(video_id)

    async def upsert_transcript(self, video_id: int, processing_status: ProcessingStatus, **fields: Any) -> Transcript:
        transcript = self.store.transcripts.get(video_id)
        if transcript is None:
            transcript = Transcript(
                id=self.store.next_id(),
                video_id=video_id,
                processing_status=ProcessingStatus.PENDING,
            )
            self.store.transcripts[video_id] = transcript
            video = self.store.video_by_id(video_id)
            if video is not None:
                video.transcript = transcript
        if transcript.processing_status != processing_status:
            transcript.transition_to(processing_status)
        for key, value in fields.items():
            if key == "source" and value is not None:
                value = TranscriptSource(value)
            setattr(transcript, key, value)
        self.store.writes.append(("transcript", (video_id, str(processing_status))))
        return transcript

    async def update_enrichment(self, transcript: Transcript, cleaned_text: Optional[str], summary: Optional[str]) -> Transcript:
        transcript.cleaned_text = cleaned_text
        transcript.summary = summary
        self.store.writes.append(("enrichment", transcript.video_id))
        return transcript

    # ----- tags -----

    async def upsert_tags(self, names: Sequence[str]) -> dict[str, int]:
        result = {}
        for name in dict.fromkeys(n for n in names if n):
            tag = self.store.tags.get(name)
            if tag is None:
                tag = Tag(id=self.store.next_id(), name=name)
                self.store.tags[name] = tag
            result[name] = tag.id
        return result

    async def link_tags(self, video_id: int, tag_ids: Sequence[int]) -> None:
        self._check("link_tags")
        for tag_id in tag_ids:
            self.store.video_tags.add((video_id, tag_id))

    async def list_tags(self) -> list[tuple[str, int]]:
        counts = []
        for tag in self.store.tags.values():
            count = sum(
                1 for video_id, tag_id in self.store.video_tags
                if tag_id == tag.id and self.store.video_by_id(video_id).is_completed
            )
            if count:
                counts.append((tag.name, count))
        return sorted(counts, key=lambda item: (-item[1], item[0]))

    # ----- log -----

    async def log_step(self, video_id: Optional[int], step: str, status: Any, details: Optional[dict] = None) -> None:
        self.store.logs.append(LoggedStep(video_id, str(step), status, details))
        self.store.commits += 1

    # ----- chunks -----

    async def count_chunks(self, video_id: int) -> int:
        return len(self.store.chunks.get(video_id, []))

    async def store_chunks(self, video_id: int, rows: Sequence[dict], replace: bool = False) -> int:
        self._check("store_chunks")
        if replace:
            self.store.chunks.pop(video_id, None)
        self.store.chunks.setdefault(video_id, []).extend(dict(row) for row in rows)
        self.store.commits += 1
        return len(rows)

    # ----- search -----

    def _completed(self) -> list[Video]:
        return [v for v in self.store.videos.values() if v.is_completed]

    @staticmethod
    def _recency(video: Video) -> tuple:
        return (-(video.published_at.timestamp() if video.published_at else 0), video.id)

    async def search_by_tag(self, query: str, limit: int) -> list[Video]:
        self._check("search_by_tag")
        term = query.strip().lower()
        ranked = []
        for video in self._completed():
            names = [
                tag.name for tag in self.store.tags.values()
                if (video.id, tag.id) in self.store.video_tags
            ]
            if term in names:
                ranked.append((0, video))
            elif any(name.startswith(term) for name in names):
                ranked.append((1, video))
        ranked.sort(key=lambda item: (item[0], *self._recency(item[1])))
        return [video for _, video in ranked][:limit]

    async def match_chunks(self, embedding: Sequence[float], threshold: float, count: int) -> list[ChunkMatch]:
        self._check("match_chunks")
        matches = []
        for video in self._completed():
            for row in self.store.chunks.get(video.id, []):
                similarity = cosine(embedding, row["embedding"])
                if similarity > threshold:
                    matches.append((-similarity, video.id, row["chunk_index"], row))
        matches.sort(key=lambda item: item[:3])
        return [
            ChunkMatch(video_id=video_id, content=row["content"], similarity=-neg, start_time=row["start_time"])
            for neg, video_id, _, row in matches[:count]
        ]

    async def lexical_search(self, query: str, limit: int) -> list[Video]:
        self._check("lexical_search")
        term = query.strip().lower()
        hits = []
        for video in self._completed():
            transcript = self.store.transcripts.get(video.id)
            haystacks = [video.title or "", video.description or "", transcript.raw_text if transcript else ""]
            if any(term in (text or "").lower() for text in haystacks):
                hits.append(video)
        hits.sort(key=self._recency)
        return hits[:limit]

    async def get_completed_videos(self, video_ids: Sequence[int]) -> dict[int, Video]:
        return {v.id: v for v in self._completed() if v.id in set(video_ids)}

    # ----- catalog -----

    async def list_completed_videos(self, limit: int, offset: int = 0, channel_youtube_id: Optional[str] = None):
        videos = self._completed()
        if channel_youtube_id:
            channel = self.store.channels.get(channel_youtube_id)
            videos = [v for v in videos if channel is not None and v.channel_id == channel.id]
        videos.sort(key=self._recency)
        return videos[offset:offset + limit], len(videos)

    async def get_video_detail(self, youtube_id: str) -> Optional[Video]:
        return self.store.videos.get(youtube_id)

    async def create_error_report(self, video_id, report_type, description, timestamp_seconds=None) -> ErrorReport:
        report = ErrorReport(
            id=self.store.next_id(),
            video_id=video_id,
            report_type=report_type,
            description=description,
            timestamp_seconds=timestamp_seconds,
            status=ErrorReportStatus.PENDING,
            created_at=datetime.now(timezone.utc),
        )
        self.store.reports.append(report)
        return report

    # ----- backfills -----

    async def transcripts_needing_enrichment(self, limit: int, youtube_id: Optional[str] = None, force: bool = False):
        pairs = []
        for video in self._completed():
            transcript = self.store.transcripts.get(video.id)
            if transcript is None or not transcript.raw_text:
                continue
            if youtube_id and video.youtube_id != youtube_id:
                continue
            if not force and transcript.summary is not None:
                continue
            pairs.append((video, transcript))
        return pairs[:limit]

    async def videos_needing_embeddings(self, limit: int, youtube_id: Optional[str] = None, force: bool = False):
        pairs = []
        for video in self._completed():
            transcript = self.store.transcripts.get(video.id)
            if transcript is None:
                continue
            if youtube_id and video.youtube_id != youtube_id:
                continue
            if not force and self.store.chunks.get(video.id):
                continue
            pairs.append((video, transcript))
        return pairs[:limit]


# ================================
# Provider Fakes
# ================================

class KeywordEmbedder:
    """
    Embeds text as counts of vocabulary words, so two texts sharing a
    keyword have positive cosine similarity and unrelated texts have zero.
    """

    def __init__(self, vocabulary: Sequence[str], fail_on: Optional[str] = None):
        self.vocabulary = [word.lower() for word in vocabulary]
        self.fail_on = fail_on
        self.calls: list[str] = []
        self.is_initialized = True
        self.model_name = "keyword-test-model"

    async def initialize(self) -> None:
        self.is_initialized = True

    async def embed_text(self, text: str) -> list[float]:
        self.calls.append(text)
        if not text.strip():
            raise ValueError("Cannot embed empty text")
        if self.fail_on and self.fail_on in text:
            raise ProviderUnavailable("keyword-embedder", "simulated failure")
        lowered = text.lower()
        return [float(lowered.count(word)) for word in self.vocabulary] + [0.01]


class ScriptedLLM:
    """
    Stand-in for LLMClient. Each enrichment step is answered from
    ``responses`` keyed by step name ("cleaning", "summary", "tags"); an
    Exception value is raised instead of returned.
    """

    PROMPTS = {
        CLEANING_SYSTEM_PROMPT: "cleaning",
        SUMMARY_SYSTEM_PROMPT: "summary",
        TAGS_SYSTEM_PROMPT: "tags",
    }

    def __init__(self, **responses: Any):
        self.responses = responses
        self.calls: list[tuple[str, str]] = []

    async def complete(self, system: str, prompt: str, max_tokens=None, temperature=None) -> str:
        step = self.PROMPTS[system]
        self.calls.append((step, prompt))
        response = self.responses.get(step, "")
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(prompt)
        return response


def caption_result(text: str = "Governance matters. Tokens vote.") -> TranscriptResult:
    return TranscriptResult(
        text=text,
        segments=[
            TimedSegment(text="Governance matters.", start=0.0, end=2.0),
            TimedSegment(text="Tokens vote.", start=2.0, end=4.0),
        ],
        source=TranscriptSource.EXTRACTOR,
        language="en",
    )


def video_info(video_id: str = "vid00000001", days: int = 0, title: str = "") -> VideoInfo:
    return VideoInfo(
        video_id=video_id,
        title=title or f"Talk {video_id}",
        description="A conference talk",
        channel_id="UCchannel0000000000000001",
        published_at=BASE_TIME + timedelta(days=days),
        duration_seconds=600,
        view_count=10,
    )


# ================================
# Fixtures
# ================================

@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def repository_factory(store):
    return store.repository_factory()


@pytest.fixture
def repository(store) -> FakeRepository:
    return FakeRepository(store)


@pytest.fixture
def make_embedder():
    """Factory: ``make_embedder(["governance"], fail_on=None)``."""
    return KeywordEmbedder


@pytest.fixture
def make_llm():
    """Factory: ``make_llm(cleaning=..., summary=..., tags=...)``."""
    return ScriptedLLM


@pytest.fixture
def make_video_info():
    return video_info


@pytest.fixture
def make_caption_result():
    return caption_result
