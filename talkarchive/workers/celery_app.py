"""
Celery application instance and configuration.
"""

from celery import Celery
from celery.schedules import crontab

from talkarchive.core.config import settings

# Create Celery application
celery_app = Celery(
    "talkarchive",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

# Configure Celery
celery_app.conf.update(
    task_serializer=settings.CELERY_TASK_SERIALIZER,
    result_serializer=settings.CELERY_RESULT_SERIALIZER,
    accept_content=settings.celery_accept_content_list,
    timezone=settings.CELERY_TIMEZONE,
    enable_utc=settings.CELERY_ENABLE_UTC,
    task_track_started=True,
    task_time_limit=60 * 60,  # 1 hour (Whisper fallback on long talks)
    task_soft_time_limit=55 * 60,
    result_expires=3600,  # 1 hour
    worker_prefetch_multiplier=1,
)

# Celery Beat Schedule (Periodic Tasks)
celery_app.conf.beat_schedule = {
    'sync-default-channel': {
        'task': 'ingestion.sync_default_channel',
        'schedule': crontab(minute='0', hour=f'*/{settings.CHANNEL_SYNC_INTERVAL_HOURS}'),
        'options': {'queue': 'ingestion'},
    },
    'embed-pending-videos': {
        'task': 'ingestion.embed_pending',
        'schedule': crontab(minute='30', hour='*/2'),  # Every 2 hours, between syncs
        'options': {'queue': 'ingestion'},
    },
}

# Task routing
celery_app.conf.task_routes = {
    'ingestion.*': {'queue': 'ingestion'},
}

# Auto-discover tasks from talkarchive.tasks
celery_app.autodiscover_tasks(['talkarchive.tasks'])
