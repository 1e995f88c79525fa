"""
Service Dependencies for FastAPI Routes

The lifespan in ``talkarchive.main`` builds one ``Services`` container
per process and stores it on ``app.state.services``. Routes declare what
they need and FastAPI hands them the shared handle:

    @router.get("/search")
    async def search(engine: SearchEngineDep):
        ...

Tests replace a handle with ``app.dependency_overrides[get_search_engine]``
so no database or model is needed.
"""

from typing import Annotated

from fastapi import Depends, Request

from talkarchive.services.catalog import CatalogService
from talkarchive.services.container import Services
from talkarchive.services.search import HybridSearchEngine


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_search_engine(request: Request) -> HybridSearchEngine:
    return get_services(request).search


def get_catalog(request: Request) -> CatalogService:
    return get_services(request).catalog


SearchEngineDep = Annotated[HybridSearchEngine, Depends(get_search_engine)]
CatalogDep = Annotated[CatalogService, Depends(get_catalog)]

__all__ = [
    "get_services",
    "get_search_engine",
    "get_catalog",
    "SearchEngineDep",
    "CatalogDep",
]
