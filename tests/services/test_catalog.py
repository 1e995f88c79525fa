"""
Tests for the catalog service: listings, detail and error reports.
"""

import pytest

from talkarchive.core.exceptions import VideoNotFoundError
from talkarchive.models import Channel, ErrorReportStatus, ErrorReportType, VideoStatus
from talkarchive.services.catalog import MAX_REPORT_DESCRIPTION, CatalogService


@pytest.fixture
def catalog(repository_factory):
    return CatalogService(repository_factory)


@pytest.mark.asyncio
class TestListings:
    """Only completed videos are visible."""

    async def test_newest_first_with_total(self, store, catalog):
        store.add_video("video000001", published_days=1)
        store.add_video("video000002", published_days=3)
        store.add_video("video000003", published_days=2, status=VideoStatus.FAILED)

        videos, total = await catalog.list_videos()

        assert [v.youtube_id for v in videos] == ["video000002", "video000001"]
        assert total == 2

    async def test_pagination_is_clamped(self, store, catalog):
        for i in range(3):
            store.add_video(f"video00000{i}", published_days=i)

        videos, total = await catalog.list_videos(limit=0, offset=-5)

        assert len(videos) == 1
        assert total == 3

    async def test_filter_by_channel(self, store, catalog):
        channel = Channel(id=store.next_id(), youtube_id="UCchannel0000000000000001", name="Talks")
        store.channels[channel.youtube_id] = channel
        store.add_video("video000001").channel_id = channel.id
        store.add_video("video000002")

        videos, total = await catalog.list_videos(channel_id=channel.youtube_id)

        assert [v.youtube_id for v in videos] == ["video000001"]
        assert total == 1

    async def test_get_video(self, store, catalog):
        store.add_video("video000001", raw_text="Hello.")
        video = await catalog.get_video("video000001")
        assert video.transcript.raw_text == "Hello."

    @pytest.mark.parametrize("status", [VideoStatus.PENDING, VideoStatus.PROCESSING, VideoStatus.FAILED])
    async def test_unfinished_video_is_not_found(self, store, catalog, status):
        store.add_video("video000001", status=status)
        with pytest.raises(VideoNotFoundError):
            await catalog.get_video("video000001")

    async def test_tag_counts(self, store, catalog):
        store.add_video("video000001", tags=["governance", "dao"])
        store.add_video("video000002", tags=["governance"])
        store.add_video("video000003", tags=["staking"], status=VideoStatus.FAILED)

        assert await catalog.list_tags() == [("governance", 2), ("dao", 1)]


@pytest.mark.asyncio
class TestErrorReports:
    """Viewer error reports."""

    async def test_submit(self, store, catalog):
        video = store.add_video("video000001")

        report = await catalog.submit_error_report("video000001", "typo", "  Wrong name at 1:05  ", 65)

        assert report.video_id == video.id
        assert report.report_type == ErrorReportType.TYPO
        assert report.description == "Wrong name at 1:05"
        assert report.status == ErrorReportStatus.PENDING
        assert store.reports == [report]

    @pytest.mark.parametrize(
        "category, description, timestamp",
        [
            ("spam", "text", None),
            ("typo", "   ", None),
            ("typo", "x" * (MAX_REPORT_DESCRIPTION + 1), None),
            ("typo", "text", -1),
        ],
    )
    async def test_invalid_reports(self, store, catalog, category, description, timestamp):
        store.add_video("video000001")
        with pytest.raises(ValueError):
            await catalog.submit_error_report("video000001", category, description, timestamp)
        assert store.reports == []

    async def test_unknown_video(self, catalog):
        with pytest.raises(VideoNotFoundError):
            await catalog.submit_error_report("missing0000", "other", "text")
