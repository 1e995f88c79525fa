"""
Hybrid Retrieval Engine

Three strategies run concurrently, each on its own repository session:

- tag: exact or prefix match on canonical tag names
- semantic: nearest transcript chunks to the query embedding, best chunk
  per video becomes the snippet
- lexical: Postgres full-text search on transcripts plus substring match
  on title/description

Results are merged in that fixed priority (tag, semantic, lexical),
deduplicated by video keeping the first occurrence, then truncated. There
is no score fusion. A strategy that raises contributes nothing.
"""

import asyncio
import enum
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

from talkarchive.core.config import settings
from talkarchive.core.logging import get_logger
from talkarchive.models import Video
from talkarchive.services.processors.embedder import EmbeddingService
from talkarchive.services.processors.normalizer import create_snippet
from talkarchive.services.repository import RepositoryFactory, VideoRepository

logger = get_logger(__name__)

# Chunks fetched per requested result; several chunks usually belong to one video
SEMANTIC_OVERFETCH = 5


class SearchStrategy(str, enum.Enum):
    TAG = "tag"
    SEMANTIC = "semantic"
    LEXICAL = "lexical"

    def __str__(self) -> str:
        return self.value


@dataclass
class SearchHit:
    video: Video
    snippet: str
    strategy: SearchStrategy


def merge_results(
    tag_hits: Sequence[SearchHit],
    semantic_hits: Sequence[SearchHit],
    lexical_hits: Sequence[SearchHit],
    limit: int,
) -> list[SearchHit]:
    """
    Concatenate in priority order, keep the first hit per video, truncate.

    >>> merge_results([v1_tag], [v1_sem, v2_sem], [], 10)
    [v1_tag, v2_sem]
    """
    merged: list[SearchHit] = []
    seen: set[int] = set()
    for hit in (*tag_hits, *semantic_hits, *lexical_hits):
        if hit.video.id in seen:
            continue
        seen.add(hit.video.id)
        merged.append(hit)
        if len(merged) >= limit:
            break
    return merged


class HybridSearchEngine:
    """
    Usage:
    ------
    engine = HybridSearchEngine(repository_scope(session_factory), embedder)
    hits = await engine.search("governance", limit=20)
    """

    def __init__(
        self,
        repository_factory: RepositoryFactory,
        embedder: Optional[EmbeddingService] = None,
        similarity_threshold: Optional[float] = None,
    ):
        self.repository_factory = repository_factory
        self.embedder = embedder
        self.similarity_threshold = (
            similarity_threshold
            if similarity_threshold is not None
            else settings.SEARCH_SIMILARITY_THRESHOLD
        )

    async def search(self, query: str, limit: Optional[int] = None) -> list[SearchHit]:
        query = (query or "").strip()
        if not query:
            return []
        limit = min(limit or settings.SEARCH_DEFAULT_LIMIT, settings.SEARCH_MAX_LIMIT)

        tag_hits, semantic_hits, lexical_hits = await asyncio.gather(
            self._run(SearchStrategy.TAG, self.tag_search, query, limit),
            self._run(SearchStrategy.SEMANTIC, self.semantic_search, query, limit),
            self._run(SearchStrategy.LEXICAL, self.lexical_search, query, limit),
        )
        results = merge_results(tag_hits, semantic_hits, lexical_hits, limit)

        logger.info(
            "search_completed",
            query=query,
            tag=len(tag_hits),
            semantic=len(semantic_hits),
            lexical=len(lexical_hits),
            returned=len(results),
        )
        return results

    async def _run(
        self,
        strategy: SearchStrategy,
        method: Callable[[VideoRepository, str, int], Awaitable[list[SearchHit]]],
        query: str,
        limit: int,
    ) -> list[SearchHit]:
        try:
            async with self.repository_factory() as repo:
                return await method(repo, query, limit)
        except Exception as e:
            logger.warning("search_strategy_failed", strategy=str(strategy), query=query, error=str(e))
            return []

    # ========================================
    # Strategies
    # ========================================

    async def tag_search(self, repo: VideoRepository, query: str, limit: int) -> list[SearchHit]:
        videos = await repo.search_by_tag(query, limit)
        return [self._text_hit(video, query, SearchStrategy.TAG) for video in videos]

    async def semantic_search(self, repo: VideoRepository, query: str, limit: int) -> list[SearchHit]:
        if self.embedder is None or not self.embedder.is_initialized:
            return []

        embedding = await self.embedder.embed_text(query)
        matches = await repo.match_chunks(
            embedding,
            threshold=self.similarity_threshold,
            count=limit * SEMANTIC_OVERFETCH,
        )

        # Matches arrive best first, so the first chunk seen per video is its best
        best_chunks: dict[int, str] = {}
        for match in matches:
            best_chunks.setdefault(match.video_id, match.content)

        videos = await repo.get_completed_videos(list(best_chunks))
        return [
            SearchHit(video=videos[video_id], snippet=content, strategy=SearchStrategy.SEMANTIC)
            for video_id, content in best_chunks.items()
            if video_id in videos
        ][:limit]

    async def lexical_search(self, repo: VideoRepository, query: str, limit: int) -> list[SearchHit]:
        videos = await repo.lexical_search(query, limit)
        return [self._text_hit(video, query, SearchStrategy.LEXICAL) for video in videos]

    @staticmethod
    def _text_hit(video: Video, query: str, strategy: SearchStrategy) -> SearchHit:
        transcript = video.transcript
        text = transcript.display_text if transcript else video.description
        return SearchHit(video=video, snippet=create_snippet(text, query), strategy=strategy)
