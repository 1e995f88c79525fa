"""Business logic services."""

from talkarchive.services.catalog import CatalogService
from talkarchive.services.embedding_writer import EmbeddingOutcome, EmbeddingStoreWriter
from talkarchive.services.enrichment import EnrichmentProcessor, EnrichmentResult
from talkarchive.services.ingestion import IngestionOrchestrator, IngestOptions
from talkarchive.services.repository import VideoRepository, repository_scope
from talkarchive.services.search import HybridSearchEngine, SearchHit, merge_results
from talkarchive.services.transcript_service import CaptionProvider, TranscriptAcquirer
from talkarchive.services.youtube import YouTubeService

__all__ = [
    "CaptionProvider",
    "TranscriptAcquirer",
    "YouTubeService",
    "EnrichmentProcessor",
    "EnrichmentResult",
    "EmbeddingStoreWriter",
    "EmbeddingOutcome",
    "VideoRepository",
    "repository_scope",
    "IngestionOrchestrator",
    "IngestOptions",
    "HybridSearchEngine",
    "SearchHit",
    "merge_results",
    "CatalogService",
]
