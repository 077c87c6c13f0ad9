"""FeedService 测试。"""

import pytest
from returns.result import Failure, Success

from src.feed.domain.errors import ErrorKind
from src.feed.domain.models import Entry, FeedFilter
from src.feed.services.feed_service import FeedService


@pytest.fixture
def feed_service(counting_store, test_settings):
    return FeedService.from_settings(counting_store, test_settings)


class TestLoad:
    """load 按是否有搜索词分派。"""

    async def test_search_query_routes_to_search(self, feed_service, counting_store):
        await feed_service.load(FeedFilter(search_query="family"), 1, 10)

        assert counting_store.queries[0].limit == 20
        assert counting_store.queries[0].filters == ()

    async def test_no_query_routes_to_pagination(self, feed_service, counting_store):
        result = await feed_service.load(FeedFilter(tags={"family"}), 1, 10)

        assert len(result.unwrap().items) == 5
        assert counting_store.queries[0].filters != ()


class TestShareEntry:
    """分享条目。"""

    async def test_share_creates_entry_and_invalidates_metadata(self, feed_service, counting_store, now):
        await feed_service.metadata()
        entry = Entry(id="", author_id="u1", level=2, tags=("brand-new",), created_at=now)

        result = await feed_service.share_entry(entry)

        assert isinstance(result, Success)
        stored = await feed_service.repository.get_entry(result.unwrap())
        assert stored.tags == ("brand-new",)
        metadata = (await feed_service.metadata()).unwrap()
        assert "brand-new" in metadata.popular_tags

    async def test_share_duplicate_id_fails(self, feed_service, now):
        entry = Entry(id="e00", level=2, created_at=now)

        result = await feed_service.share_entry(entry)

        assert isinstance(result, Failure)
        assert result.failure().kind == ErrorKind.BACKEND_REJECTED


class TestReportAndStats:
    """举报与社区统计。"""

    async def test_report_marks_entry(self, feed_service, seeded_store):
        result = await feed_service.report_entry("e01", "u9", "spam")

        report_id = result.unwrap()
        report = await seeded_store.get("reports", report_id)
        assert report.data["status"] == "pending"
        assert report.data["postId"] == "e01"
        entry = await feed_service.repository.get_entry("e01")
        assert entry.is_reported is True

    async def test_report_missing_entry_writes_nothing(self, feed_service, seeded_store):
        result = await feed_service.report_entry("missing", "u9", "spam")

        assert isinstance(result, Failure)
        assert result.failure().kind == ErrorKind.NOT_FOUND
        assert await seeded_store.count("reports") == 0

    async def test_community_stats(self, feed_service):
        stats = (await feed_service.community_stats()).unwrap()

        assert stats == {"total_entries": 40, "total_reactions": 0}
