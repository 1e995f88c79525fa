"""
Embedding Store Writer

Chunks a video's transcript, embeds each chunk and stores the whole
generation in one bulk insert.

Outcomes:
---------
- STORED: at least one chunk embedded and saved
- SKIPPED: the video already has chunks (pass ``force`` to rebuild)
- NO_CONTENT: nothing to chunk; not an error
- FAILED: the model is not loaded or every chunk failed to embed;
  nothing was written

A chunk that fails to embed is logged and left out. Chunks are only
written after all embeddings are computed, so a generation never has
rows without vectors.
"""

import enum
from dataclasses import dataclass, field
from typing import Optional, Sequence

from talkarchive.core.exceptions import ProviderUnavailable
from talkarchive.core.logging import get_logger
from talkarchive.services.processors.chunker import TextChunker, span_time_range
from talkarchive.services.processors.embedder import EmbeddingService
from talkarchive.services.processors.normalizer import TimedSegment
from talkarchive.services.repository import VideoRepository

logger = get_logger(__name__)


class EmbeddingStatus(str, enum.Enum):
    STORED = "stored"
    SKIPPED = "skipped"
    NO_CONTENT = "no_content"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


@dataclass
class EmbeddingOutcome:
    status: EmbeddingStatus
    chunk_count: int = 0
    failed_chunks: list[int] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status != EmbeddingStatus.FAILED

    def as_details(self) -> dict:
        return {
            "status": self.status.value,
            "chunk_count": self.chunk_count,
            "failed_chunks": self.failed_chunks,
        }


class EmbeddingStoreWriter:
    def __init__(
        self,
        embedder: EmbeddingService,
        chunker: Optional[TextChunker] = None,
    ):
        self.embedder = embedder
        self.chunker = chunker or TextChunker()

    async def embed_and_store(
        self,
        repository: VideoRepository,
        video_id: int,
        text: Optional[str],
        segments: Optional[Sequence[TimedSegment]] = None,
        force: bool = False,
    ) -> EmbeddingOutcome:
        if not force:
            existing = await repository.count_chunks(video_id)
            if existing > 0:
                logger.info("embedding_skipped", video_id=video_id, existing_chunks=existing)
                return EmbeddingOutcome(EmbeddingStatus.SKIPPED, chunk_count=existing)

        normalized = self.chunker.normalize_text(text)
        spans = self.chunker.split(normalized)
        if not spans:
            logger.info("embedding_no_content", video_id=video_id)
            return EmbeddingOutcome(EmbeddingStatus.NO_CONTENT)

        if not self.embedder.is_initialized:
            logger.error("embedding_model_not_loaded", video_id=video_id, chunks=len(spans))
            return EmbeddingOutcome(EmbeddingStatus.FAILED, failed_chunks=[span.index for span in spans])

        rows = []
        failed: list[int] = []
        for span in spans:
            try:
                embedding = await self.embedder.embed_text(span.text)
            except (ProviderUnavailable, ValueError) as e:
                logger.warning(
                    "chunk_embedding_failed",
                    video_id=video_id,
                    chunk_index=span.index,
                    error=str(e),
                )
                failed.append(span.index)
                continue

            start_time, end_time = span_time_range(span, len(normalized), segments)
            rows.append({
                # Reindex so stored chunks stay contiguous when some were skipped
                "chunk_index": len(rows),
                "content": span.text,
                "start_time": start_time,
                "end_time": end_time,
                "embedding": embedding,
            })

        if not rows:
            logger.error("embedding_failed", video_id=video_id, chunks=len(spans))
            return EmbeddingOutcome(EmbeddingStatus.FAILED, failed_chunks=failed)

        stored = await repository.store_chunks(video_id, rows, replace=force)
        logger.info(
            "embeddings_stored",
            video_id=video_id,
            chunk_count=stored,
            failed_chunks=len(failed),
        )
        return EmbeddingOutcome(EmbeddingStatus.STORED, chunk_count=stored, failed_chunks=failed)
