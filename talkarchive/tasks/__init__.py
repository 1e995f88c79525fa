"""
Celery tasks for background processing.
"""

from talkarchive.tasks.ingestion_tasks import (
    embed_pending,
    enrich_pending,
    ingest_video,
    sync_channel,
    sync_default_channel,
)

__all__ = [
    "ingest_video",
    "sync_channel",
    "sync_default_channel",
    "enrich_pending",
    "embed_pending",
]
