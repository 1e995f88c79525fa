"""
Scheduled ingestion trigger.

External schedulers (a platform cron, an uptime pinger) call this to queue
a sync of the default channel. When CRON_SECRET is set the caller must
send it in the X-Cron-Secret header.
"""

import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Header, HTTPException, status

from talkarchive.core.config import settings
from talkarchive.schemas.report import TaskQueuedResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["Cron"])


def verify_cron_secret(provided: Optional[str]) -> None:
    expected = settings.CRON_SECRET
    if not expected:
        return
    if not provided or not secrets.compare_digest(provided, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid cron secret")


@router.post(
    "/ingest",
    response_model=TaskQueuedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue a sync of the default channel",
    responses={
        401: {"description": "Missing or wrong X-Cron-Secret"},
        503: {"description": "DEFAULT_CHANNEL_ID is not configured"},
    },
)
async def trigger_ingest(x_cron_secret: Optional[str] = Header(None)):
    verify_cron_secret(x_cron_secret)

    if not settings.DEFAULT_CHANNEL_ID:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="DEFAULT_CHANNEL_ID is not configured",
        )

    from talkarchive.tasks.ingestion_tasks import sync_default_channel

    task = sync_default_channel.delay()
    logger.info(f"Queued default channel sync (task: {task.id})")
    return TaskQueuedResponse(
        success=True,
        message=f"Sync queued for channel {settings.DEFAULT_CHANNEL_ID}",
        task_id=task.id,
    )
