"""相似条目（twins）匹配服务。

查找与种子条目至少共享一个标签、且强度等级相近的条目。
"""

import logging

from returns.result import Failure, Result, Success

from src.feed.domain.errors import FetchError, classify_error
from src.feed.domain.models import MAX_LEVEL, MIN_LEVEL, Entry, LevelRange
from src.feed.infrastructure.mapper import F_CREATED_AT, F_LEVEL, F_TAGS
from src.feed.infrastructure.repository import COLLECTION_ENTRIES, EntryRepository
from src.store.base import FieldFilter, FilterOp, OrderBy, StructuredQuery

logger = logging.getLogger(__name__)


def twin_level_range(seed_level: int, tolerance: int = 2) -> LevelRange:
    """种子等级 ± tolerance，并裁剪到 1..10。"""
    return LevelRange(
        min=max(MIN_LEVEL, seed_level - tolerance),
        max=min(MAX_LEVEL, seed_level + tolerance),
    )


def rank_twins(candidates: list[Entry], seed_level: int) -> list[Entry]:
    """按等级接近程度排序，等级差相同时较新的在前。"""
    return sorted(
        candidates,
        key=lambda e: (abs(e.level - seed_level), -e.created_at.timestamp(), e.id),
    )


class TwinService:
    """相似条目匹配服务。

    传入 exclude_entry_id 时总是按 ID 排除种子条目本身。
    """

    def __init__(
        self,
        repository: EntryRepository,
        level_tolerance: int = 2,
        result_limit: int = 10,
        fetch_window: int = 50,
        max_tags: int = 10,
    ) -> None:
        """初始化服务。

        Args:
            repository: 条目仓库
            level_tolerance: 等级容差
            result_limit: 返回条目上限
            fetch_window: 本地排序前从后端抓取的候选数
            max_tags: 参与匹配的最大标签数
        """
        self._repository = repository
        self._level_tolerance = level_tolerance
        self._result_limit = result_limit
        self._fetch_window = fetch_window
        self._max_tags = max_tags

    async def find_twins(
        self,
        seed_tags: set[str] | frozenset[str] | list[str],
        seed_level: int,
        exclude_entry_id: str | None = None,
        exclude_author_id: str | None = None,
    ) -> Result[list[Entry], FetchError]:
        """查找相似条目。

        Args:
            seed_tags: 种子标签
            seed_level: 种子强度等级（1-10）
            exclude_entry_id: 需要排除的种子条目 ID
            exclude_author_id: 需要排除的作者（例如当前用户自己）

        Returns:
            Result[list[Entry], FetchError]: 排序后的相似条目，无标签时为空列表

        Raises:
            ValueError: seed_level 不在 1-10
        """
        if not MIN_LEVEL <= seed_level <= MAX_LEVEL:
            raise ValueError(f"seed_level 必须在 {MIN_LEVEL}-{MAX_LEVEL}: {seed_level}")

        tags = sorted({t.strip() for t in seed_tags if isinstance(t, str) and t.strip()})
        if not tags:
            return Success([])
        tags = tags[: self._max_tags]

        level_range = twin_level_range(seed_level, self._level_tolerance)
        query = StructuredQuery(
            collection=COLLECTION_ENTRIES,
            filters=(
                FieldFilter(F_TAGS, FilterOp.ARRAY_CONTAINS_ANY, tuple(tags)),
                FieldFilter(F_LEVEL, FilterOp.GTE, level_range.min),
                FieldFilter(F_LEVEL, FilterOp.LTE, level_range.max),
            ),
            order_by=(OrderBy(F_CREATED_AT, descending=True),),
            limit=self._fetch_window,
        )

        try:
            candidates = await self._repository.query_entries(query, operation="twins")
        except Exception as e:
            error = classify_error(e)
            logger.error(
                "查找相似条目失败: tags=%s, level=%d, kind=%s, error=%s",
                tags,
                seed_level,
                error.kind.value,
                error.message,
                exc_info=True,
            )
            return Failure(error)

        seed_tag_set = set(tags)
        twins = [
            entry
            for entry in candidates
            if entry.id != exclude_entry_id
            and (exclude_author_id is None or entry.author_id != exclude_author_id)
            and level_range.contains(entry.level)
            and seed_tag_set.intersection(entry.tags)
        ]
        twins = rank_twins(twins, seed_level)[: self._result_limit]

        logger.info(
            "相似条目查找完成: tags=%s, level=%d, range=%d-%d, candidates=%d, twins=%d",
            tags,
            seed_level,
            level_range.min,
            level_range.max,
            len(candidates),
            len(twins),
        )
        return Success(twins)
