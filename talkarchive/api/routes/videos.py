"""
Public archive endpoints: video listing, video detail, tags and viewer
error reports.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from talkarchive.core.config import settings
from talkarchive.core.exceptions import VideoNotFoundError
from talkarchive.db.deps import CatalogDep
from talkarchive.schemas.report import ErrorReportCreate, ErrorReportResponse
from talkarchive.schemas.video import (
    TagCount,
    TagListResponse,
    VideoDetail,
    VideoListItem,
    VideoListResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Videos"])


@router.get(
    "/videos",
    response_model=VideoListResponse,
    summary="List completed videos",
)
async def list_videos(
    catalog: CatalogDep,
    limit: int = Query(20, ge=1, le=settings.SEARCH_MAX_LIMIT),
    offset: int = Query(0, ge=0),
    channel_id: Optional[str] = Query(None, description="Only videos from this YouTube channel"),
):
    videos, total = await catalog.list_videos(limit=limit, offset=offset, channel_id=channel_id)
    return VideoListResponse(
        videos=[VideoListItem.from_video(video) for video in videos],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/videos/{youtube_id}",
    response_model=VideoDetail,
    summary="Get one video with its transcript",
    responses={404: {"description": "Video not found or not yet processed"}},
)
async def get_video(youtube_id: str, catalog: CatalogDep):
    try:
        video = await catalog.get_video(youtube_id)
    except VideoNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return VideoDetail.from_video(video)


@router.post(
    "/videos/{youtube_id}/reports",
    response_model=ErrorReportResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Report a transcript problem",
    responses={
        404: {"description": "Video not found or not yet processed"},
        422: {"description": "Invalid report"},
    },
)
async def submit_error_report(youtube_id: str, report: ErrorReportCreate, catalog: CatalogDep):
    try:
        created = await catalog.submit_error_report(
            youtube_id,
            category=report.category.value,
            description=report.description,
            timestamp_seconds=report.timestamp_seconds,
        )
    except VideoNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    return ErrorReportResponse(
        id=created.id,
        category=str(created.report_type),
        description=created.description,
        timestamp_seconds=created.timestamp_seconds,
        status=str(created.status),
        created_at=created.created_at,
    )


@router.get("/tags", response_model=TagListResponse, summary="List tags with video counts")
async def list_tags(catalog: CatalogDep):
    tags = await catalog.list_tags()
    return TagListResponse(tags=[TagCount(name=name, video_count=count) for name, count in tags])
