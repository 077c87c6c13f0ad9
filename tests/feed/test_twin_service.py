"""TwinService 测试。"""

from datetime import timedelta

import pytest
from returns.result import Failure, Success

from src.feed.infrastructure.repository import EntryRepository
from src.feed.services.twin_service import TwinService, twin_level_range
from src.store.base import FilterOp, StoreError, StoreErrorCode


@pytest.fixture
def twin_store(memory_store, make_doc, now, wrap_counting):
    docs = {
        "seed": make_doc(5, ["sleep", "work"], now),
        "same-level-old": make_doc(5, ["sleep"], now - timedelta(days=3)),
        "same-level-new": make_doc(5, ["work"], now - timedelta(hours=1)),
        "one-off": make_doc(6, ["work"], now - timedelta(hours=2)),
        "two-off": make_doc(3, ["sleep"], now - timedelta(hours=3)),
        "too-far": make_doc(8, ["work"], now - timedelta(hours=4)),
        "no-shared-tag": make_doc(5, ["family"], now - timedelta(hours=5)),
        "mine": make_doc(5, ["work"], now - timedelta(hours=6), userId="me"),
    }
    for doc_id, data in docs.items():
        memory_store.seed("community_feed", doc_id, data)
    return wrap_counting(memory_store)


@pytest.fixture
def service(twin_store):
    return TwinService(EntryRepository(twin_store))


class TestLevelRange:
    """等级窗口裁剪。"""

    @pytest.mark.parametrize(
        "level,expected",
        [(1, (1, 3)), (2, (1, 4)), (5, (3, 7)), (9, (7, 10)), (10, (8, 10))],
    )
    def test_clamped(self, level, expected):
        level_range = twin_level_range(level)
        assert (level_range.min, level_range.max) == expected


class TestFindTwins:
    """相似条目匹配。"""

    async def test_ranked_by_level_distance_then_recency(self, service):
        result = await service.find_twins({"sleep", "work"}, 5, exclude_entry_id="seed")

        assert isinstance(result, Success)
        assert [e.id for e in result.unwrap()] == [
            "same-level-new",
            "mine",
            "same-level-old",
            "one-off",
            "two-off",
        ]

    async def test_seed_excluded_by_id(self, service):
        twins = (await service.find_twins(["work"], 5, exclude_entry_id="seed")).unwrap()

        assert "seed" not in {e.id for e in twins}

    async def test_author_exclusion(self, service):
        twins = (
            await service.find_twins(["work"], 5, exclude_entry_id="seed", exclude_author_id="me")
        ).unwrap()

        assert "mine" not in {e.id for e in twins}

    async def test_all_twins_share_tag_and_level(self, service):
        twins = (await service.find_twins({"sleep", "work"}, 5)).unwrap()

        for entry in twins:
            assert {"sleep", "work"} & set(entry.tags)
            assert abs(entry.level - 5) <= 2

    async def test_empty_tags_returns_empty_without_query(self, service, twin_store):
        result = await service.find_twins(set(), 5)

        assert result == Success([])
        assert twin_store.query_count == 0

    async def test_query_shape(self, service, twin_store):
        await service.find_twins({"work"}, 1)

        (query,) = twin_store.queries
        assert query.limit == 50
        assert [f.op for f in query.filters] == [FilterOp.ARRAY_CONTAINS_ANY, FilterOp.GTE, FilterOp.LTE]
        assert query.filters[1].value == 1
        assert query.filters[2].value == 3

    async def test_result_limit(self, memory_store, make_doc, now):
        for i in range(15):
            memory_store.seed("community_feed", f"t{i}", make_doc(5, ["work"], now - timedelta(minutes=i)))
        service = TwinService(EntryRepository(memory_store))

        twins = (await service.find_twins(["work"], 5)).unwrap()

        assert len(twins) == 10

    @pytest.mark.parametrize("level", [0, 11])
    async def test_invalid_level(self, service, level):
        with pytest.raises(ValueError):
            await service.find_twins(["work"], level)

    async def test_backend_error(self, service, twin_store):
        twin_store.fail_queries_with = StoreError(StoreErrorCode.PERMISSION_DENIED)

        result = await service.find_twins(["work"], 5)

        assert isinstance(result, Failure)
        assert result.failure().retryable is False
