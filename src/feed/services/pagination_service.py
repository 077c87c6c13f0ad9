"""Feed 分页服务。

后端只支持“返回前 N 条匹配文档”，因此分页通过 limit + 本地跳过模拟：
请求 page * page_size 条（受上限约束），丢弃前 (page - 1) * page_size 条，
取接下来的 page_size 条。
"""

import logging
from collections.abc import Callable
from datetime import datetime

from returns.result import Failure, Result, Success

from src.feed.domain.errors import FetchError, classify_error
from src.feed.domain.models import Entry, FeedFilter, PageWindow, PaginatedResponse
from src.feed.infrastructure.repository import EntryRepository
from src.feed.services.query_builder import QueryBuilder
from src.shared.clock import utc_now

logger = logging.getLogger(__name__)


class PaginationService:
    """Feed 分页服务。

    has_next 与 total_count 都是启发式估算：
    total_count 是受上限约束的估算查询返回的文档数，不是真实总数；
    has_next 只在本页取满且估算总数超出本页结束位置时为 True。
    """

    def __init__(
        self,
        repository: EntryRepository,
        query_builder: QueryBuilder | None = None,
        fetch_ceiling: int = 1000,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """初始化服务。

        Args:
            repository: 条目仓库
            query_builder: 查询构建器
            fetch_ceiling: 单次后端查询的最大文档数
            clock: 当前时间来源
        """
        self._repository = repository
        self._query_builder = query_builder or QueryBuilder()
        self._fetch_ceiling = fetch_ceiling
        self._clock = clock

    async def page(
        self,
        feed_filter: FeedFilter,
        page: int,
        page_size: int,
    ) -> Result[PaginatedResponse[Entry], FetchError]:
        """查询一页条目。

        Args:
            feed_filter: 筛选条件（search_query 在此忽略）
            page: 页码（>= 1）
            page_size: 每页条数（> 0）

        Returns:
            Result[PaginatedResponse[Entry], FetchError]:
                Success: 分页结果
                Failure: 后端错误

        Raises:
            ValueError: page 或 page_size 越界
        """
        window = PageWindow(page, page_size)
        base_query = self._query_builder.build(feed_filter, self._clock())
        fetch_limit = window.fetch_limit(self._fetch_ceiling)

        try:
            documents = await self._repository.query_documents(
                base_query.with_limit(fetch_limit), operation="page"
            )

            # 未取满说明已拿到全部匹配文档；已达上限则无需再估算
            if len(documents) < fetch_limit or fetch_limit >= self._fetch_ceiling:
                estimated_total = len(documents)
            else:
                estimate = await self._repository.query_documents(
                    base_query.with_limit(self._fetch_ceiling), operation="page_estimate"
                )
                estimated_total = len(estimate)
        except Exception as e:
            error = classify_error(e)
            logger.error(
                "分页查询失败: page=%d, page_size=%d, kind=%s, error=%s",
                page,
                page_size,
                error.kind.value,
                error.message,
                exc_info=True,
            )
            return Failure(error)

        entries = self._repository.decode_documents(documents)
        items = window.slice(entries)
        has_next = len(items) == page_size and window.end < estimated_total

        logger.info(
            "分页查询完成: page=%d, page_size=%d, count=%d, total_estimate=%d, has_next=%s",
            page,
            page_size,
            len(items),
            estimated_total,
            has_next,
        )

        return Success(
            PaginatedResponse(
                items=items,
                page=page,
                page_size=page_size,
                total_count=estimated_total,
                has_next=has_next,
                has_previous=page > 1,
            )
        )
