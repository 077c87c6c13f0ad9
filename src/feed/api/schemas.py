"""Feed API 数据模型。

定义 Feed API 的请求体和响应数据模型。
"""

from pydantic import BaseModel, Field

from src.feed.domain.models import Entry, FilterMetadata, PaginatedResponse
from src.shared.schemas import UTCDatetime


class EntryItem(BaseModel):
    """社区条目响应模型。"""

    id: str = Field(..., description="条目 ID")
    author_name: str = Field(..., description="匿名用户名")
    title: str = Field(..., description="标题")
    body: str = Field(..., description="正文")
    level: int = Field(..., description="强度等级（1-10）")
    tags: list[str] = Field(default_factory=list, description="标签")
    wins: list[str] = Field(default_factory=list, description="小胜利列表")
    created_at: UTCDatetime = Field(..., description="创建时间")
    reaction_count: int = Field(0, description="支持反应数")
    twin_count: int = Field(0, description="相似条目数")

    @classmethod
    def from_entry(cls, entry: Entry) -> "EntryItem":
        return cls(
            id=entry.id,
            author_name=entry.author_name,
            title=entry.title,
            body=entry.body,
            level=entry.level,
            tags=list(entry.tags),
            wins=list(entry.wins),
            created_at=entry.created_at,
            reaction_count=entry.reaction_count,
            twin_count=entry.twin_count,
        )


class FeedPageResponse(BaseModel):
    """分页 Feed 响应模型。

    total_count 为尽力估算值，has_next 才是是否继续翻页的依据。
    """

    items: list[EntryItem] = Field(..., description="条目列表")
    page: int = Field(..., description="页码（从 1 开始）")
    page_size: int = Field(..., description="每页条数")
    total_count: int = Field(..., description="估算总数")
    total_pages: int = Field(..., description="估算总页数")
    has_next: bool = Field(..., description="是否有下一页")
    has_previous: bool = Field(..., description="是否有上一页")

    @classmethod
    def from_page(cls, response: PaginatedResponse[Entry]) -> "FeedPageResponse":
        return cls(
            items=[EntryItem.from_entry(e) for e in response.items],
            page=response.page,
            page_size=response.page_size,
            total_count=response.total_count,
            total_pages=response.total_pages,
            has_next=response.has_next,
            has_previous=response.has_previous,
        )


class FilterMetadataResponse(BaseModel):
    """筛选元数据响应模型。"""

    popular_tags: list[str] = Field(..., description="热门标签（按出现次数降序）")
    level_min: int = Field(..., description="样本中的最低强度")
    level_max: int = Field(..., description="样本中的最高强度")
    date_from: UTCDatetime | None = Field(None, description="样本最早时间")
    date_to: UTCDatetime | None = Field(None, description="样本最晚时间")

    @classmethod
    def from_metadata(cls, metadata: FilterMetadata) -> "FilterMetadataResponse":
        date_from, date_to = metadata.date_range or (None, None)
        return cls(
            popular_tags=list(metadata.popular_tags),
            level_min=metadata.level_range[0],
            level_max=metadata.level_range[1],
            date_from=date_from,
            date_to=date_to,
        )


class CommunityStatsResponse(BaseModel):
    """社区统计响应模型。"""

    total_entries: int = Field(..., description="社区条目总数")
    total_reactions: int = Field(..., description="支持反应总数")


class TwinsResponse(BaseModel):
    """相似条目响应模型。"""

    items: list[EntryItem] = Field(..., description="相似条目（按强度接近程度排序）")
    count: int = Field(..., description="条目数")


class ReportRequest(BaseModel):
    """举报请求体。"""

    reason: str = Field(..., min_length=1, max_length=500, description="举报原因")


class ReportResponse(BaseModel):
    """举报响应模型。"""

    report_id: str = Field(..., description="举报记录 ID")
    entry_id: str = Field(..., description="被举报条目 ID")


class ShareEntryRequest(BaseModel):
    """分享条目请求体。"""

    title: str = Field("", max_length=200, description="标题")
    body: str = Field("", max_length=5000, description="正文")
    level: int = Field(..., ge=1, le=10, description="强度等级（1-10）")
    tags: list[str] = Field(default_factory=list, description="标签")
    wins: list[str] = Field(default_factory=list, description="小胜利列表")
    author_name: str = Field("", max_length=100, description="匿名用户名")
    source_entry_id: str | None = Field(None, description="来源日记条目 ID")


class ShareEntryResponse(BaseModel):
    """分享条目响应模型。"""

    entry_id: str = Field(..., description="新条目 ID")
