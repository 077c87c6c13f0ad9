"""Feed API 路由。

提供社区 Feed 分页、搜索、筛选元数据、相似条目和举报的 HTTP 端点。
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Query, status
from returns.result import Failure, Success

from src.api.dependencies import CurrentUserDep, FeedServiceDep, http_error_for
from src.config import get_settings
from src.feed.api.schemas import (
    CommunityStatsResponse,
    EntryItem,
    FeedPageResponse,
    FilterMetadataResponse,
    ReportRequest,
    ReportResponse,
    ShareEntryRequest,
    ShareEntryResponse,
    TwinsResponse,
)
from src.feed.domain.models import (
    MAX_LEVEL,
    MIN_LEVEL,
    Entry,
    FeedFilter,
    LevelRange,
    SortKey,
    TimeWindow,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/feed", tags=["feed"])


def _page_size(page_size: int | None) -> int:
    """未提供时使用默认值，超过上限时截断到上限。"""
    settings = get_settings()
    if page_size is None:
        return settings.feed_default_page_size
    return min(page_size, settings.feed_max_page_size)


def _level_range(level_min: int | None, level_max: int | None) -> LevelRange | None:
    if level_min is None and level_max is None:
        return None
    try:
        return LevelRange(
            min=level_min if level_min is not None else MIN_LEVEL,
            max=level_max if level_max is not None else MAX_LEVEL,
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail="强度范围无效: level_min 不能大于 level_max",
        ) from e


@router.get(
    "",
    response_model=FeedPageResponse,
    summary="获取社区 Feed",
    description="按时间窗口、强度范围、标签和排序分页查询社区条目；q 非空时走关键词搜索。",
)
async def get_feed(
    feed_service: FeedServiceDep,
    time_window: TimeWindow = Query(TimeWindow.ALL, description="时间窗口"),
    level_min: int | None = Query(None, ge=MIN_LEVEL, le=MAX_LEVEL, description="最低强度"),
    level_max: int | None = Query(None, ge=MIN_LEVEL, le=MAX_LEVEL, description="最高强度"),
    tags: list[str] = Query(default=[], description="标签（任意匹配）"),
    sort: SortKey = Query(SortKey.CREATED_DESC, description="排序方式"),
    q: str = Query("", description="搜索关键词"),
    page: int = Query(1, ge=1, description="页码"),
    page_size: int | None = Query(None, ge=1, description="每页条数"),
) -> FeedPageResponse:
    """分页获取社区条目。"""
    feed_filter = FeedFilter(
        time_window=time_window,
        level_range=_level_range(level_min, level_max),
        tags=frozenset(tags),
        sort_key=sort,
        search_query=q,
    )
    result = await feed_service.load(feed_filter, page, _page_size(page_size))

    match result:
        case Success(response):
            return FeedPageResponse.from_page(response)
        case Failure(error):
            raise http_error_for(error)


@router.get(
    "/search",
    response_model=FeedPageResponse,
    summary="搜索社区条目",
    description="按关键词（任意一个词命中标题、正文或标签）搜索社区条目。",
)
async def search_feed(
    feed_service: FeedServiceDep,
    q: str = Query("", description="搜索关键词"),
    page: int = Query(1, ge=1, description="页码"),
    page_size: int | None = Query(None, ge=1, description="每页条数"),
) -> FeedPageResponse:
    """关键词搜索。"""
    result = await feed_service.search(q, page, _page_size(page_size))

    match result:
        case Success(response):
            return FeedPageResponse.from_page(response)
        case Failure(error):
            raise http_error_for(error)


@router.get(
    "/metadata",
    response_model=FilterMetadataResponse,
    summary="获取筛选元数据",
    description="热门标签、强度范围和时间跨度，结果带 TTL 缓存。",
)
async def get_metadata(feed_service: FeedServiceDep) -> FilterMetadataResponse:
    """获取筛选元数据。"""
    result = await feed_service.metadata()

    match result:
        case Success(metadata):
            return FilterMetadataResponse.from_metadata(metadata)
        case Failure(error):
            raise http_error_for(error)


@router.post(
    "/metadata/invalidate",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="清除筛选元数据缓存",
)
async def invalidate_metadata(feed_service: FeedServiceDep) -> None:
    """清除元数据缓存，下次请求重新计算。"""
    feed_service.invalidate_metadata()
    logger.info("元数据缓存已通过 API 清除")


@router.get(
    "/stats",
    response_model=CommunityStatsResponse,
    summary="社区统计",
)
async def get_stats(feed_service: FeedServiceDep) -> CommunityStatsResponse:
    """社区条目数和支持反应数。"""
    result = await feed_service.community_stats()

    match result:
        case Success(stats):
            return CommunityStatsResponse(**stats)
        case Failure(error):
            raise http_error_for(error)


@router.get(
    "/twins",
    response_model=TwinsResponse,
    summary="查找相似条目",
    description="至少共享一个标签、强度在 ±2 以内的条目，按强度接近程度排序。",
)
async def get_twins(
    feed_service: FeedServiceDep,
    level: int = Query(..., ge=MIN_LEVEL, le=MAX_LEVEL, description="种子强度"),
    tags: list[str] = Query(default=[], description="种子标签"),
    exclude_entry_id: str | None = Query(None, description="排除的种子条目 ID"),
) -> TwinsResponse:
    """查找相似条目。"""
    result = await feed_service.find_twins(tags, level, exclude_entry_id=exclude_entry_id)

    match result:
        case Success(twins):
            return TwinsResponse(items=[EntryItem.from_entry(e) for e in twins], count=len(twins))
        case Failure(error):
            raise http_error_for(error)


@router.post(
    "",
    response_model=ShareEntryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="分享条目到社区",
)
async def share_entry(
    request: ShareEntryRequest,
    feed_service: FeedServiceDep,
    user_id: CurrentUserDep,
) -> ShareEntryResponse:
    """分享条目。"""
    entry = Entry(
        id="",
        author_id=user_id,
        author_name=request.author_name,
        source_entry_id=request.source_entry_id,
        title=request.title,
        body=request.body,
        level=request.level,
        tags=tuple(request.tags),
        wins=tuple(request.wins),
        created_at=datetime.now(timezone.utc),
    )
    result = await feed_service.share_entry(entry)

    match result:
        case Success(entry_id):
            return ShareEntryResponse(entry_id=entry_id)
        case Failure(error):
            raise http_error_for(error)


@router.post(
    "/{entry_id}/report",
    response_model=ReportResponse,
    status_code=status.HTTP_201_CREATED,
    summary="举报条目",
)
async def report_entry(
    entry_id: str,
    request: ReportRequest,
    feed_service: FeedServiceDep,
    user_id: CurrentUserDep,
) -> ReportResponse:
    """举报条目，创建待处理的举报记录。"""
    result = await feed_service.report_entry(entry_id, user_id, request.reason)

    match result:
        case Success(report_id):
            return ReportResponse(report_id=report_id, entry_id=entry_id)
        case Failure(error):
            raise http_error_for(error)
