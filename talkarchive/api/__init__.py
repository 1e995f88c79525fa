"""
API routes initialization.

This module aggregates all API routers and provides a single router
to include in the main application.
"""

from fastapi import APIRouter

from talkarchive.api.routes import cron, search, videos

# Create main API router
api_router = APIRouter()

# Hybrid search
api_router.include_router(search.router)

# Video listing, detail, tags and error reports
api_router.include_router(videos.router)

# Scheduled ingestion trigger
api_router.include_router(cron.router)
