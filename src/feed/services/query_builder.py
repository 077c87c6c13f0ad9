"""Feed 查询构建器。

把 FeedFilter 转换为有序的后端查询约束，纯函数，无 I/O。
"""

import logging
from datetime import datetime, timedelta

from src.feed.domain.models import FeedFilter
from src.feed.infrastructure.mapper import F_CREATED_AT, F_LEVEL, F_TAGS, to_epoch_millis
from src.feed.infrastructure.repository import COLLECTION_ENTRIES
from src.store.base import FieldFilter, FilterOp, OrderBy, StructuredQuery

logger = logging.getLogger(__name__)


class QueryBuilder:
    """Feed 查询构建器。

    约束按固定优先级追加：时间窗口、强度区间、标签成员、排序。
    相同的 (filter, now) 总是得到相同的查询。
    """

    def __init__(self, max_tags: int = 10, collection: str = COLLECTION_ENTRIES) -> None:
        """初始化构建器。

        Args:
            max_tags: 单个数组成员约束允许的最大标签数，超出部分被截断
            collection: 条目集合名称
        """
        self._max_tags = max_tags
        self._collection = collection

    def build(self, feed_filter: FeedFilter, now: datetime) -> StructuredQuery:
        """构建查询。

        Args:
            feed_filter: 筛选条件
            now: 计算时间窗口起点使用的当前时间

        Returns:
            StructuredQuery: 不含 limit 的查询
        """
        filters: list[FieldFilter] = []

        # 1. 时间窗口
        hours = feed_filter.time_window.hours
        if hours is not None:
            cutoff = to_epoch_millis(now - timedelta(hours=hours))
            filters.append(FieldFilter(F_CREATED_AT, FilterOp.GT, cutoff))

        # 2. 强度区间
        level_range = feed_filter.level_range
        if level_range is not None:
            filters.append(FieldFilter(F_LEVEL, FilterOp.GTE, level_range.min))
            filters.append(FieldFilter(F_LEVEL, FilterOp.LTE, level_range.max))

        # 3. 标签成员
        if feed_filter.tags:
            tags = sorted(feed_filter.tags)
            if len(tags) > self._max_tags:
                logger.warning(
                    "标签数 %d 超过上限 %d，仅使用前 %d 个: %s",
                    len(tags),
                    self._max_tags,
                    self._max_tags,
                    tags[: self._max_tags],
                )
                tags = tags[: self._max_tags]
            filters.append(FieldFilter(F_TAGS, FilterOp.ARRAY_CONTAINS_ANY, tuple(tags)))

        # 4. 排序
        sort_key = feed_filter.sort_key
        order_by = (OrderBy(sort_key.field, descending=sort_key.descending),)

        return StructuredQuery(
            collection=self._collection,
            filters=tuple(filters),
            order_by=order_by,
        )
