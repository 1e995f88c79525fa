"""
Tests for the HTTP API.

The app is driven through httpx's ASGI transport, which does not run the
lifespan, so no database or model is loaded. Service handles are replaced
with ones backed by the in-memory store.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from talkarchive.core.config import settings
from talkarchive.core.exceptions import ProviderUnavailable
from talkarchive.db.deps import get_catalog, get_search_engine
from talkarchive.main import app
from talkarchive.models import VideoStatus
from talkarchive.services.catalog import CatalogService
from talkarchive.services.search import HybridSearchEngine

API = settings.API_V1_PREFIX


# ================================
# Fixtures
# ================================

@pytest.fixture
def embedder(make_embedder):
    return make_embedder(["governance", "staking"])


@pytest.fixture
async def client(repository_factory, embedder):
    app.dependency_overrides[get_search_engine] = lambda: HybridSearchEngine(
        repository_factory, embedder, similarity_threshold=0.5
    )
    app.dependency_overrides[get_catalog] = lambda: CatalogService(repository_factory)

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ================================
# Health
# ================================

@pytest.mark.asyncio
class TestHealth:
    """Health and root endpoints."""

    async def test_unhealthy_without_services(self, client):
        response = await client.get("/health")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "unhealthy"
        assert data["database"] == "disconnected"
        assert data["embedding_model"] == "not_loaded"

    async def test_root(self, client):
        response = await client.get("/")

        assert response.status_code == 200
        assert settings.APP_NAME in response.json()["message"]


# ================================
# Search
# ================================

@pytest.mark.asyncio
class TestSearchEndpoint:
    """GET /search"""

    async def test_results_in_priority_order(self, store, client):
        store.add_video("video000001", title="DAO talk", raw_text="A talk about DAOs.", tags=["governance"])
        v2 = store.add_video("video000002", title="Voting", raw_text="On-chain voting design.")
        store.add_chunk(v2, "Voting design for protocols.", [1.0, 0.0, 0.01])

        response = await client.get(f"{API}/search", params={"q": "  governance "})

        assert response.status_code == 200
        data = response.json()
        assert data["query"] == "governance"
        assert data["total"] == 2
        assert [r["video"]["youtube_id"] for r in data["results"]] == ["video000001", "video000002"]
        assert [r["strategy"] for r in data["results"]] == ["tag", "semantic"]
        assert data["results"][1]["snippet"] == "Voting design for protocols."

    async def test_blank_query_is_empty(self, client):
        response = await client.get(f"{API}/search")

        assert response.status_code == 200
        assert response.json() == {"query": "", "results": [], "total": 0}

    @pytest.mark.parametrize("limit", [0, settings.SEARCH_MAX_LIMIT + 1])
    async def test_invalid_limit(self, client, limit):
        response = await client.get(f"{API}/search", params={"q": "governance", "limit": limit})
        assert response.status_code == 422


# ================================
# Videos and tags
# ================================

@pytest.mark.asyncio
class TestVideoEndpoints:
    """GET /videos, GET /videos/{id}, GET /tags"""

    async def test_list(self, store, client):
        store.add_video("video000001", published_days=1)
        store.add_video("video000002", published_days=2)
        store.add_video("video000003", status=VideoStatus.PROCESSING)

        response = await client.get(f"{API}/videos", params={"limit": 10})

        assert response.status_code == 200
        data = response.json()
        assert [v["youtube_id"] for v in data["videos"]] == ["video000002", "video000001"]
        assert data["total"] == 2
        assert data["limit"] == 10
        assert data["offset"] == 0

    async def test_detail(self, store, client):
        store.add_video(
            "video000001",
            raw_text="raw words",
            cleaned_text="Clean words.",
            summary="A short summary.",
        )

        response = await client.get(f"{API}/videos/video000001")

        assert response.status_code == 200
        data = response.json()
        assert data["transcript"] == "Clean words."
        assert data["summary"] == "A short summary."

    async def test_detail_not_found(self, store, client):
        store.add_video("video000001", status=VideoStatus.FAILED)

        response = await client.get(f"{API}/videos/video000001")

        assert response.status_code == 404

    async def test_tags(self, store, client):
        store.add_video("video000001", tags=["governance", "dao"])
        store.add_video("video000002", tags=["governance"])

        response = await client.get(f"{API}/tags")

        assert response.status_code == 200
        assert response.json()["tags"] == [
            {"name": "governance", "video_count": 2},
            {"name": "dao", "video_count": 1},
        ]

    async def test_provider_outage_is_503(self, client):
        catalog = MagicMock()
        catalog.list_tags = AsyncMock(side_effect=ProviderUnavailable("database", "connection refused"))
        app.dependency_overrides[get_catalog] = lambda: catalog

        response = await client.get(f"{API}/tags")

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "provider_unavailable"


# ================================
# Error reports
# ================================

@pytest.mark.asyncio
class TestErrorReportEndpoint:
    """POST /videos/{id}/reports"""

    async def test_created(self, store, client):
        store.add_video("video000001")

        response = await client.post(
            f"{API}/videos/video000001/reports",
            json={"category": "typo", "description": "  Wrong name  ", "timestamp_seconds": 65},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["category"] == "typo"
        assert data["description"] == "Wrong name"
        assert data["timestamp_seconds"] == 65
        assert data["status"] == "pending"
        assert len(store.reports) == 1

    async def test_unknown_video(self, client):
        response = await client.post(
            f"{API}/videos/missing0000/reports",
            json={"category": "other", "description": "text"},
        )
        assert response.status_code == 404

    @pytest.mark.parametrize(
        "body",
        [
            {"category": "spam", "description": "text"},
            {"category": "typo", "description": "   "},
            {"category": "typo", "description": "text", "timestamp_seconds": -1},
            {"category": "typo"},
        ],
    )
    async def test_invalid_body(self, store, client, body):
        store.add_video("video000001")

        response = await client.post(f"{API}/videos/video000001/reports", json=body)

        assert response.status_code == 422
        assert store.reports == []


# ================================
# Cron
# ================================

@pytest.mark.asyncio
class TestCronEndpoint:
    """POST /cron/ingest"""

    async def test_wrong_secret(self, client, monkeypatch):
        monkeypatch.setattr(settings, "CRON_SECRET", "s3cret")
        monkeypatch.setattr(settings, "DEFAULT_CHANNEL_ID", "UCdefault")

        missing = await client.post(f"{API}/cron/ingest")
        wrong = await client.post(f"{API}/cron/ingest", headers={"X-Cron-Secret": "nope"})

        assert missing.status_code == 401
        assert wrong.status_code == 401

    async def test_no_default_channel(self, client, monkeypatch):
        monkeypatch.setattr(settings, "CRON_SECRET", None)
        monkeypatch.setattr(settings, "DEFAULT_CHANNEL_ID", None)

        response = await client.post(f"{API}/cron/ingest")

        assert response.status_code == 503

    async def test_queues_sync(self, client, monkeypatch):
        monkeypatch.setattr(settings, "CRON_SECRET", "s3cret")
        monkeypatch.setattr(settings, "DEFAULT_CHANNEL_ID", "UCdefault")

        with patch("talkarchive.tasks.ingestion_tasks.sync_default_channel") as task:
            task.delay.return_value = MagicMock(id="task-42")
            response = await client.post(f"{API}/cron/ingest", headers={"X-Cron-Secret": "s3cret"})

        assert response.status_code == 202
        assert response.json() == {
            "success": True,
            "message": "Sync queued for channel UCdefault",
            "task_id": "task-42",
        }
        task.delay.assert_called_once_with()
