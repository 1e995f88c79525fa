"""
Service wiring.

Builds every service handle for one process (API server, Celery task,
CLI run) from settings. Nothing is a module-level singleton: callers own
the returned ``Services`` and must ``close()`` it.

Providers without credentials are left out rather than failing startup:
no YOUTUBE_API_KEY disables channel ingestion, no OPENAI_API_KEY
disables the Whisper fallback, no ANTHROPIC_API_KEY disables enrichment.
"""

from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from talkarchive.core.config import settings
from talkarchive.core.logging import get_logger
from talkarchive.db.session import close_db, create_engine, create_session_factory
from talkarchive.services.catalog import CatalogService
from talkarchive.services.embedding_writer import EmbeddingStoreWriter
from talkarchive.services.enrichment import EnrichmentProcessor
from talkarchive.services.ingestion import IngestionOrchestrator
from talkarchive.services.llm import LLMClient
from talkarchive.services.processors.embedder import EmbeddingService
from talkarchive.services.repository import RepositoryFactory, repository_scope
from talkarchive.services.search import HybridSearchEngine
from talkarchive.services.transcript_service import CaptionProvider, TranscriptAcquirer
from talkarchive.services.whisper_service import WhisperTranscriber
from talkarchive.services.youtube import YouTubeService

logger = get_logger(__name__)


@dataclass
class Services:
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    repository_factory: RepositoryFactory
    embedder: EmbeddingService
    search: HybridSearchEngine
    catalog: CatalogService
    orchestrator: IngestionOrchestrator

    async def close(self) -> None:
        await close_db(self.engine)


def build_youtube() -> Optional[YouTubeService]:
    if not settings.YOUTUBE_API_KEY:
        logger.warning("youtube_api_disabled", reason="YOUTUBE_API_KEY not set")
        return None
    return YouTubeService()


def build_acquirer() -> TranscriptAcquirer:
    transcriber = WhisperTranscriber() if settings.OPENAI_API_KEY else None
    if transcriber is None:
        logger.warning("whisper_fallback_disabled", reason="OPENAI_API_KEY not set")
    return TranscriptAcquirer(CaptionProvider(), transcriber)


def build_enricher(enabled: bool = True) -> Optional[EnrichmentProcessor]:
    if not enabled:
        return None
    if not settings.ANTHROPIC_API_KEY:
        logger.warning("enrichment_disabled", reason="ANTHROPIC_API_KEY not set")
        return None
    return EnrichmentProcessor(LLMClient.from_settings())


async def build_services(
    engine: Optional[AsyncEngine] = None,
    load_embedder: bool = True,
    enable_llm: bool = True,
    embedder: Optional[EmbeddingService] = None,
    **engine_overrides: Any,
) -> Services:
    """
    Args:
        engine: Reuse an existing engine instead of creating one
        embedder: Reuse an already loaded embedding service
        load_embedder: Load the sentence-transformers model now. Without it
            semantic search returns nothing and embedding steps fail.
        enable_llm: Build the enrichment processor when credentials allow
        engine_overrides: Passed to ``create_engine`` (workers use NullPool)
    """
    engine = engine or create_engine(**engine_overrides)
    session_factory = create_session_factory(engine)
    repository_factory = repository_scope(session_factory)

    embedder = embedder or EmbeddingService()
    if load_embedder:
        await embedder.initialize()

    orchestrator = IngestionOrchestrator(
        repository_factory=repository_factory,
        acquirer=build_acquirer(),
        youtube=build_youtube(),
        enricher=build_enricher(enable_llm),
        embedding_writer=EmbeddingStoreWriter(embedder),
    )

    return Services(
        engine=engine,
        session_factory=session_factory,
        repository_factory=repository_factory,
        embedder=embedder,
        search=HybridSearchEngine(repository_factory, embedder),
        catalog=CatalogService(repository_factory),
        orchestrator=orchestrator,
    )
