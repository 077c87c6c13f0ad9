"""Feed 会话状态。

展示层（列表页面的 view-model）使用的入口：每个视图持有一个 FeedSession，
切换筛选、翻页都通过它发起。HTTP 路由每个请求都是无状态的，直接调用
FeedService，不经过这里。

每次加载请求带一个递增的代号；响应到达时如果已有更新的请求，
则丢弃该响应，不覆盖当前展示的数据。
"""

import logging

from returns.result import Failure, Result, Success

from src.feed.domain.errors import FetchError
from src.feed.domain.models import Entry, FeedFilter, PaginatedResponse
from src.feed.services.feed_service import FeedService
from src.monitoring import record, stale_responses_dropped_total

logger = logging.getLogger(__name__)


class RequestGenerations:
    """请求代号计数器。"""

    def __init__(self) -> None:
        self._current = 0

    @property
    def current(self) -> int:
        return self._current

    def next(self) -> int:
        """开始一个新请求，之前的请求全部过期。"""
        self._current += 1
        return self._current

    def is_current(self, generation: int) -> bool:
        return generation == self._current


class FeedSession:
    """单个展示视图的 Feed 会话。

    只保存筛选条件和页码，偏移量每次由 PageWindow 重新计算。
    """

    def __init__(self, feed_service: FeedService, page_size: int = 15) -> None:
        """初始化会话。

        Args:
            feed_service: Feed 查询服务
            page_size: 每页条数
        """
        self._feed_service = feed_service
        self._page_size = page_size
        self._generations = RequestGenerations()
        self.feed_filter = FeedFilter()
        self.page = 1
        self.response: PaginatedResponse[Entry] | None = None
        self.error: FetchError | None = None

    async def load(
        self,
        feed_filter: FeedFilter,
        page: int = 1,
    ) -> Result[PaginatedResponse[Entry], FetchError] | None:
        """加载一页并在响应仍为最新时应用。

        Args:
            feed_filter: 筛选条件
            page: 页码

        Returns:
            加载结果；请求已被更新的请求取代时返回 None
        """
        generation = self._generations.next()
        result = await self._feed_service.load(feed_filter, page, self._page_size)

        if not self._generations.is_current(generation):
            record(stale_responses_dropped_total)
            logger.debug(
                "丢弃过期响应: generation=%d, current=%d",
                generation,
                self._generations.current,
            )
            return None

        match result:
            case Success(response):
                self.feed_filter = feed_filter
                self.page = page
                self.response = response
                self.error = None
            case Failure(error):
                self.error = error
        return result

    async def next_page(self) -> Result[PaginatedResponse[Entry], FetchError] | None:
        """在当前筛选条件下加载下一页。"""
        if self.response is not None and not self.response.has_next:
            return Success(self.response)
        return await self.load(self.feed_filter, self.page + 1 if self.response else 1)

    async def refresh(self) -> Result[PaginatedResponse[Entry], FetchError] | None:
        """重新加载当前页。"""
        return await self.load(self.feed_filter, self.page)

    def cancel(self) -> None:
        """使所有进行中的请求过期。"""
        self._generations.next()
