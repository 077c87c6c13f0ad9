"""筛选元数据服务。

采样最近的条目，统计热门标签、强度范围和时间跨度，结果带 TTL 缓存。
"""

import asyncio
import logging
from collections import Counter
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Generic, TypeVar

from returns.result import Failure, Result, Success

from src.feed.domain.errors import FetchError, classify_error
from src.feed.domain.models import MAX_LEVEL, MIN_LEVEL, FilterMetadata
from src.feed.infrastructure.mapper import F_CREATED_AT, read_created_at, read_level, read_tags
from src.feed.infrastructure.repository import COLLECTION_ENTRIES, EntryRepository
from src.monitoring import metadata_cache_events_total, record
from src.shared.clock import utc_now
from src.store.base import Document, OrderBy, StructuredQuery

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_stale(computed_at: datetime, now: datetime, ttl: timedelta) -> bool:
    """缓存值是否过期（存活时间达到 TTL 即过期）。"""
    return now - computed_at >= ttl


@dataclass(frozen=True)
class CachedValue(Generic[T]):
    """缓存值及其计算时间。"""

    value: T
    computed_at: datetime

    def is_stale(self, now: datetime, ttl: timedelta) -> bool:
        return is_stale(self.computed_at, now, ttl)


class MetadataCache(Generic[T]):
    """单值 TTL 缓存。

    invalidate 会递增版本号；刷新开始前读取的版本号与当前不一致时，
    刷新结果不会写入缓存。
    """

    def __init__(self) -> None:
        self._entry: CachedValue[T] | None = None
        self._version = 0

    @property
    def version(self) -> int:
        return self._version

    def peek(self) -> CachedValue[T] | None:
        return self._entry

    def get_fresh(self, now: datetime, ttl: timedelta) -> T | None:
        """返回未过期的缓存值，没有则返回 None。"""
        entry = self._entry
        if entry is None or entry.is_stale(now, ttl):
            return None
        return entry.value

    def store(self, value: T, computed_at: datetime, version: int | None = None) -> bool:
        """写入缓存。

        Args:
            value: 缓存值
            computed_at: 计算时间
            version: 刷新开始时的版本号，不一致时放弃写入

        Returns:
            bool: 是否写入
        """
        if version is not None and version != self._version:
            return False
        self._entry = CachedValue(value, computed_at)
        return True

    def invalidate(self) -> None:
        self._entry = None
        self._version += 1


def aggregate_metadata(documents: Iterable[Document], tag_limit: int = 20) -> FilterMetadata:
    """从采样文档计算筛选元数据。

    格式错误的字段按字段跳过：缺少标签的条目贡献 0 个标签，而不是导致整体失败。
    没有有效强度时范围取 1..10，没有有效时间时 date_range 为 None。
    """
    tag_counts: Counter[str] = Counter()
    min_level: int | None = None
    max_level: int | None = None
    earliest: datetime | None = None
    latest: datetime | None = None
    skipped = 0

    for doc in documents:
        data = doc.data
        if not isinstance(data, dict):
            skipped += 1
            continue

        tag_counts.update(set(read_tags(data)))

        level = read_level(data)
        if level is not None:
            min_level = level if min_level is None else min(min_level, level)
            max_level = level if max_level is None else max(max_level, level)

        created_at = read_created_at(data)
        if created_at is not None:
            earliest = created_at if earliest is None else min(earliest, created_at)
            latest = created_at if latest is None else max(latest, created_at)

    if skipped:
        logger.warning("元数据采样中跳过 %d 个格式错误的文档", skipped)

    # 次数降序，次数相同时按标签名排序
    ranked = sorted(tag_counts.items(), key=lambda item: (-item[1], item[0]))
    popular_tags = tuple(tag for tag, _ in ranked[:tag_limit])

    if min_level is None or max_level is None:
        level_range = (MIN_LEVEL, MAX_LEVEL)
    else:
        level_range = (min_level, max_level)

    date_range = (earliest, latest) if earliest is not None and latest is not None else None

    return FilterMetadata(
        popular_tags=popular_tags,
        level_range=level_range,
        date_range=date_range,
    )


class MetadataService:
    """筛选元数据服务。

    缓存命中时不产生任何 I/O；并发刷新通过锁串行化，
    等待锁的调用方在拿到锁后重新检查缓存。
    """

    def __init__(
        self,
        repository: EntryRepository,
        ttl: timedelta = timedelta(minutes=10),
        sample_size: int = 500,
        tag_limit: int = 20,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """初始化服务。

        Args:
            repository: 条目仓库
            ttl: 缓存有效期
            sample_size: 采样条目数
            tag_limit: 热门标签数量
            clock: 当前时间来源
        """
        self._repository = repository
        self._ttl = ttl
        self._sample_size = sample_size
        self._tag_limit = tag_limit
        self._clock = clock
        self._cache: MetadataCache[FilterMetadata] = MetadataCache()
        self._refresh_lock = asyncio.Lock()

    @property
    def cache(self) -> MetadataCache[FilterMetadata]:
        return self._cache

    async def metadata(self) -> Result[FilterMetadata, FetchError]:
        """获取筛选元数据。

        Returns:
            Result[FilterMetadata, FetchError]:
                Success: 元数据（可能来自缓存）
                Failure: 后端错误，缓存保持不变
        """
        cached = self._cache.get_fresh(self._clock(), self._ttl)
        if cached is not None:
            record(metadata_cache_events_total, result="hit")
            logger.debug("元数据缓存命中")
            return Success(cached)

        async with self._refresh_lock:
            # 等锁期间可能已被其他调用方刷新
            cached = self._cache.get_fresh(self._clock(), self._ttl)
            if cached is not None:
                record(metadata_cache_events_total, result="hit")
                return Success(cached)

            record(metadata_cache_events_total, result="miss")
            version = self._cache.version
            query = StructuredQuery(
                collection=COLLECTION_ENTRIES,
                order_by=(OrderBy(F_CREATED_AT, descending=True),),
                limit=self._sample_size,
            )

            try:
                documents = await self._repository.query_documents(query, operation="metadata")
            except Exception as e:
                error = classify_error(e)
                logger.error(
                    "加载筛选元数据失败: kind=%s, error=%s",
                    error.kind.value,
                    error.message,
                    exc_info=True,
                )
                return Failure(error)

            metadata = aggregate_metadata(documents, self._tag_limit)
            stored = self._cache.store(metadata, self._clock(), version=version)

            logger.info(
                "筛选元数据已加载: sample=%d, tags=%d, level_range=%s, cached=%s",
                len(documents),
                len(metadata.popular_tags),
                metadata.level_range,
                stored,
            )
            return Success(metadata)

    def invalidate(self) -> None:
        """显式清除缓存。"""
        self._cache.invalidate()
        logger.debug("筛选元数据缓存已清除")
