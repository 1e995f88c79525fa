"""
Search endpoint.

Hybrid search over completed videos: tag matches first, then semantic
chunk matches, then full-text matches, one entry per video.
"""

from fastapi import APIRouter, Query

from talkarchive.core.config import settings
from talkarchive.db.deps import SearchEngineDep
from talkarchive.schemas.video import SearchResponse, SearchResult, VideoSummary

router = APIRouter(tags=["Search"])


@router.get(
    "/search",
    response_model=SearchResponse,
    summary="Search the archive",
    responses={
        200: {"description": "Results in priority order (possibly empty)"},
        422: {"description": "Invalid limit"},
    },
)
async def search(
    engine: SearchEngineDep,
    q: str = Query("", max_length=500, description="Search query"),
    limit: int = Query(settings.SEARCH_DEFAULT_LIMIT, ge=1, le=settings.SEARCH_MAX_LIMIT),
):
    """A blank query returns no results rather than an error."""
    hits = await engine.search(q, limit)
    results = [
        SearchResult(
            video=VideoSummary.from_video(hit.video),
            snippet=hit.snippet,
            strategy=str(hit.strategy),
        )
        for hit in hits
    ]
    return SearchResponse(query=q.strip(), results=results, total=len(results))
