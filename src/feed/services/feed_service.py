"""Feed 查询服务。

组合分页、搜索、元数据和相似条目服务，对展示层提供统一入口。
"""

import logging
from datetime import timedelta

from returns.result import Failure, Result, Success

from src.config import Settings, get_settings
from src.feed.domain.errors import FetchError, classify_error
from src.feed.domain.models import Entry, FeedFilter, FilterMetadata, PaginatedResponse
from src.feed.infrastructure.repository import EntryRepository
from src.feed.services.metadata_service import MetadataService
from src.feed.services.pagination_service import PaginationService
from src.feed.services.query_builder import QueryBuilder
from src.feed.services.search_service import SearchService
from src.feed.services.twin_service import TwinService
from src.store.base import DocumentStore

logger = logging.getLogger(__name__)


class FeedService:
    """Feed 查询服务。

    除参数越界外，所有方法都返回 Result，不向调用方抛出后端异常。
    """

    def __init__(
        self,
        repository: EntryRepository,
        pagination: PaginationService,
        search: SearchService,
        metadata: MetadataService,
        twins: TwinService,
    ) -> None:
        self._repository = repository
        self._pagination = pagination
        self._search = search
        self._metadata = metadata
        self._twins = twins

    @classmethod
    def from_settings(cls, store: DocumentStore, settings: Settings | None = None) -> "FeedService":
        """按配置组装服务。"""
        settings = settings or get_settings()
        repository = EntryRepository(store)
        pagination = PaginationService(
            repository,
            QueryBuilder(max_tags=settings.max_tag_constraints),
            fetch_ceiling=settings.feed_fetch_ceiling,
        )
        return cls(
            repository=repository,
            pagination=pagination,
            search=SearchService(
                repository,
                pagination,
                fetch_ceiling=settings.feed_fetch_ceiling,
                widen_factor=settings.search_widen_factor,
                min_token_length=settings.search_min_token_length,
            ),
            metadata=MetadataService(
                repository,
                ttl=timedelta(seconds=settings.metadata_cache_ttl_seconds),
                sample_size=settings.metadata_sample_size,
                tag_limit=settings.metadata_popular_tag_limit,
            ),
            twins=TwinService(
                repository,
                level_tolerance=settings.twin_level_tolerance,
                result_limit=settings.twin_result_limit,
                fetch_window=settings.twin_fetch_window,
                max_tags=settings.max_tag_constraints,
            ),
        )

    @property
    def repository(self) -> EntryRepository:
        return self._repository

    async def page(
        self,
        feed_filter: FeedFilter,
        page: int,
        page_size: int,
    ) -> Result[PaginatedResponse[Entry], FetchError]:
        return await self._pagination.page(feed_filter, page, page_size)

    async def search(
        self,
        query: str,
        page: int,
        page_size: int,
    ) -> Result[PaginatedResponse[Entry], FetchError]:
        return await self._search.search(query, page, page_size)

    async def load(
        self,
        feed_filter: FeedFilter,
        page: int,
        page_size: int,
    ) -> Result[PaginatedResponse[Entry], FetchError]:
        """按筛选条件加载一页：有搜索词时走搜索，否则走分页。"""
        if feed_filter.search_query:
            return await self.search(feed_filter.search_query, page, page_size)
        return await self.page(feed_filter, page, page_size)

    async def metadata(self) -> Result[FilterMetadata, FetchError]:
        return await self._metadata.metadata()

    def invalidate_metadata(self) -> None:
        self._metadata.invalidate()

    async def find_twins(
        self,
        tags: set[str] | frozenset[str] | list[str],
        level: int,
        exclude_entry_id: str | None = None,
        exclude_author_id: str | None = None,
    ) -> Result[list[Entry], FetchError]:
        return await self._twins.find_twins(
            tags,
            level,
            exclude_entry_id=exclude_entry_id,
            exclude_author_id=exclude_author_id,
        )

    async def community_stats(self) -> Result[dict[str, int], FetchError]:
        """统计社区条目数和支持反应数。"""
        try:
            return Success(await self._repository.community_stats())
        except Exception as e:
            logger.error("获取社区统计失败: %s", e, exc_info=True)
            return Failure(classify_error(e))

    async def report_entry(
        self,
        entry_id: str,
        user_id: str,
        reason: str,
    ) -> Result[str, FetchError]:
        """举报条目，返回举报记录 ID。"""
        try:
            return Success(await self._repository.report_entry(entry_id, user_id, reason))
        except Exception as e:
            logger.error("举报条目失败: entry_id=%s, error=%s", entry_id, e, exc_info=True)
            return Failure(classify_error(e))

    async def share_entry(self, entry: Entry) -> Result[str, FetchError]:
        """把条目分享到社区，成功后清除元数据缓存。"""
        try:
            entry_id = await self._repository.create_entry(entry)
        except Exception as e:
            logger.error("分享条目失败: %s", e, exc_info=True)
            return Failure(classify_error(e))
        self._metadata.invalidate()
        return Success(entry_id)
