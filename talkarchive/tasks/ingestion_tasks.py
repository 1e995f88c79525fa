"""
Celery tasks for transcript ingestion.

This module contains background tasks for:
- Ingesting a single video
- Syncing a channel (and the configured default channel on a schedule)
- Backfilling enrichment and embeddings for completed videos

Each task runs its coroutine in a fresh event loop and builds its own
services on a NullPool engine, since pooled asyncpg connections cannot
move between loops. The embedding model is loaded once per worker process.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from functools import lru_cache
from typing import AsyncIterator, Optional

from celery import Task
from sqlalchemy.pool import NullPool

from talkarchive.core.config import settings
from talkarchive.core.exceptions import ProviderUnavailable
from talkarchive.services.container import build_services
from talkarchive.services.ingestion import IngestionOrchestrator, IngestOptions
from talkarchive.services.processors.embedder import EmbeddingService
from talkarchive.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


# ========================================
# Helper Functions
# ========================================

def run_async(coro):
    """Run an async coroutine to completion in the task's own event loop."""
    return asyncio.run(coro)


@lru_cache(maxsize=1)
def get_worker_embedder() -> EmbeddingService:
    """The model is independent of any event loop, so one instance serves every task."""
    return EmbeddingService()


@asynccontextmanager
async def build_orchestrator(
    skip_llm: bool = False,
    load_embedder: bool = True,
) -> AsyncIterator[IngestionOrchestrator]:
    services = await build_services(
        load_embedder=load_embedder,
        enable_llm=not skip_llm,
        embedder=get_worker_embedder(),
        poolclass=NullPool,
    )
    try:
        yield services.orchestrator
    finally:
        await services.close()


# ========================================
# Base Task Class
# ========================================

class IngestionTask(Task):
    """Base task class with retry logic for transient provider failures."""

    autoretry_for = (ProviderUnavailable,)
    retry_kwargs = {'max_retries': 3}
    retry_backoff = True
    retry_backoff_max = 600  # 10 minutes
    retry_jitter = True


# ========================================
# Main Tasks
# ========================================

@celery_app.task(base=IngestionTask, name='ingestion.ingest_video', bind=True)
def ingest_video(
    self,
    youtube_id: str,
    skip_enrichment: bool = False,
    skip_embeddings: bool = False,
) -> dict:
    """
    Run the full pipeline for one video.

    Returns:
        {'youtube_id': str, 'outcome': str, 'source': str | None,
         'tags': List[str], 'chunk_count': int, 'error': str | None}
    """
    options = IngestOptions(skip_enrichment=skip_enrichment, skip_embeddings=skip_embeddings)

    async def _ingest():
        async with build_orchestrator(skip_llm=skip_enrichment, load_embedder=not skip_embeddings) as orchestrator:
            return await orchestrator.ingest_video(youtube_id, options)

    result = run_async(_ingest())
    logger.info(f"Video {youtube_id} ingestion finished: {result.outcome}")
    return {
        'youtube_id': result.youtube_id,
        'outcome': str(result.outcome),
        'source': result.source,
        'tags': result.tags,
        'degraded_steps': result.degraded_steps,
        'chunk_count': result.chunk_count,
        'error': result.error,
    }


@celery_app.task(base=IngestionTask, name='ingestion.sync_channel', bind=True)
def sync_channel(
    self,
    channel_id: str,
    limit: Optional[int] = None,
    since: Optional[str] = None,
    concurrency: Optional[int] = None,
) -> dict:
    """
    Ingest a channel's uploads newer than the stored cursor.

    Args:
        channel_id: YouTube channel ID
        limit: Maximum number of videos to process
        since: ISO timestamp overriding the stored cursor
        concurrency: Videos processed at once (default INGEST_CONCURRENCY)
    """
    published_after = datetime.fromisoformat(since) if since else None

    async def _sync():
        async with build_orchestrator() as orchestrator:
            return await orchestrator.ingest_channel(
                channel_id,
                limit=limit,
                since=published_after,
                concurrency=concurrency,
            )

    result = run_async(_sync())
    summary = result.summary()
    logger.info(
        f"Channel {channel_id} synced: {summary['completed']} completed, "
        f"{summary['skipped']} skipped, {summary['failed']} failed"
    )
    return summary


@celery_app.task(name='ingestion.sync_default_channel')
def sync_default_channel() -> dict:
    """Periodic task: sync DEFAULT_CHANNEL_ID, capped at INGEST_MAX_RESULTS videos."""
    if not settings.DEFAULT_CHANNEL_ID:
        logger.warning("DEFAULT_CHANNEL_ID is not set; skipping scheduled sync")
        return {'skipped': True, 'reason': 'DEFAULT_CHANNEL_ID not configured'}

    result = sync_channel.delay(settings.DEFAULT_CHANNEL_ID, limit=settings.INGEST_MAX_RESULTS)
    return {'skipped': False, 'channel_id': settings.DEFAULT_CHANNEL_ID, 'task_id': result.id}


@celery_app.task(base=IngestionTask, name='ingestion.enrich_pending', bind=True)
def enrich_pending(
    self,
    limit: int = 10,
    youtube_id: Optional[str] = None,
    force: bool = False,
) -> dict:
    """Enrich completed transcripts without a summary (all of them with force)."""

    async def _enrich():
        async with build_orchestrator() as orchestrator:
            return await orchestrator.enrich_pending(limit=limit, youtube_id=youtube_id, force=force)

    results = run_async(_enrich())
    return {
        'processed': len(results),
        'degraded': sum(1 for r in results if r.degraded_steps),
        'videos': [r.youtube_id for r in results],
    }


@celery_app.task(base=IngestionTask, name='ingestion.embed_pending', bind=True)
def embed_pending(
    self,
    limit: int = 50,
    youtube_id: Optional[str] = None,
    force: bool = False,
) -> dict:
    """Embed completed videos that have no chunks yet."""

    async def _embed():
        async with build_orchestrator(skip_llm=True) as orchestrator:
            return await orchestrator.embed_pending(limit=limit, youtube_id=youtube_id, force=force)

    results = run_async(_embed())
    return {
        'processed': len(results),
        'outcomes': {video_id: outcome.as_details() for video_id, outcome in results},
    }
