"""Feed 搜索服务。

后端不支持全文检索，搜索在客户端进行：按创建时间抓取一个放大的窗口，
保留标题、正文或标签中包含任一搜索词的条目，再做与分页相同的跳过/截取。
"""

import logging

from returns.result import Failure, Result, Success

from src.feed.domain.errors import FetchError, classify_error
from src.feed.domain.models import Entry, FeedFilter, PageWindow, PaginatedResponse
from src.feed.infrastructure.mapper import F_CREATED_AT
from src.feed.infrastructure.repository import COLLECTION_ENTRIES, EntryRepository
from src.feed.services.pagination_service import PaginationService
from src.store.base import OrderBy, StructuredQuery

logger = logging.getLogger(__name__)


def tokenize(query: str, min_length: int = 2) -> list[str]:
    """按空白切分搜索词，丢弃过短的词，结果转为小写并去重（保持顺序）。"""
    tokens: list[str] = []
    for raw in query.split():
        token = raw.casefold()
        if len(token) >= min_length and token not in tokens:
            tokens.append(token)
    return tokens


def matches_any(entry: Entry, tokens: list[str]) -> bool:
    """条目的标题、正文或标签是否包含任一搜索词（OR 语义）。"""
    haystack = " ".join([entry.title, entry.body, *entry.tags]).casefold()
    return any(token in haystack for token in tokens)


class SearchService:
    """Feed 搜索服务。

    多个搜索词之间是 OR 关系。total_count 由过滤后的集合大小近似得出，
    不是后端的未过滤总数。
    """

    def __init__(
        self,
        repository: EntryRepository,
        pagination: PaginationService,
        fetch_ceiling: int = 1000,
        widen_factor: int = 2,
        min_token_length: int = 2,
    ) -> None:
        """初始化服务。

        Args:
            repository: 条目仓库
            pagination: 无搜索词时委托的分页服务
            fetch_ceiling: 单次后端查询的最大文档数
            widen_factor: 抓取窗口放大倍数
            min_token_length: 搜索词最小长度
        """
        self._repository = repository
        self._pagination = pagination
        self._fetch_ceiling = fetch_ceiling
        self._widen_factor = widen_factor
        self._min_token_length = min_token_length

    async def search(
        self,
        query: str,
        page: int,
        page_size: int,
    ) -> Result[PaginatedResponse[Entry], FetchError]:
        """搜索条目。

        Args:
            query: 搜索文本
            page: 页码（>= 1）
            page_size: 每页条数（> 0）

        Returns:
            Result[PaginatedResponse[Entry], FetchError]: 搜索结果或后端错误
        """
        window = PageWindow(page, page_size)
        tokens = tokenize(query or "", self._min_token_length)
        if not tokens:
            logger.debug("搜索词为空，回退到普通分页: query=%r", query)
            return await self._pagination.page(FeedFilter(), page, page_size)

        fetch_limit = min(window.end * self._widen_factor, self._fetch_ceiling)
        raw_query = StructuredQuery(
            collection=COLLECTION_ENTRIES,
            order_by=(OrderBy(F_CREATED_AT, descending=True),),
            limit=fetch_limit,
        )

        try:
            documents = await self._repository.query_documents(raw_query, operation="search")
        except Exception as e:
            error = classify_error(e)
            logger.error(
                "搜索失败: query=%r, kind=%s, error=%s",
                query,
                error.kind.value,
                error.message,
                exc_info=True,
            )
            return Failure(error)

        matched = [
            entry
            for entry in self._repository.decode_documents(documents)
            if matches_any(entry, tokens)
        ]
        items = window.slice(matched)

        # 原始窗口取满时，后端可能还有更多匹配条目
        backend_exhausted = len(documents) < fetch_limit
        has_next = len(matched) > window.end or (
            not backend_exhausted and len(items) == page_size and fetch_limit < self._fetch_ceiling
        )

        logger.info(
            "搜索完成: query=%r, tokens=%s, scanned=%d, matched=%d, count=%d, has_next=%s",
            query,
            tokens,
            len(documents),
            len(matched),
            len(items),
            has_next,
        )

        return Success(
            PaginatedResponse(
                items=items,
                page=page,
                page_size=page_size,
                total_count=len(matched),
                has_next=has_next,
                has_previous=page > 1,
            )
        )
