"""社区 Feed 领域模型。

定义条目、筛选条件、分页窗口与分页结果等领域对象。
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

MIN_LEVEL = 1
MAX_LEVEL = 10

T = TypeVar("T")


class TimeWindow(str, Enum):
    """时间窗口枚举。"""

    ALL = "all"
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"

    @property
    def hours(self) -> int | None:
        """窗口长度（小时），ALL 返回 None。"""
        return _TIME_WINDOW_HOURS[self]


_TIME_WINDOW_HOURS: dict[TimeWindow, int | None] = {
    TimeWindow.ALL: None,
    TimeWindow.TODAY: 24,
    TimeWindow.WEEK: 168,
    TimeWindow.MONTH: 720,
}


class SortKey(str, Enum):
    """排序方式枚举。"""

    CREATED_DESC = "createdAt_desc"
    CREATED_ASC = "createdAt_asc"
    REACTIONS_DESC = "supportCount_desc"
    LEVEL_DESC = "chaosLevel_desc"
    LEVEL_ASC = "chaosLevel_asc"

    @property
    def field(self) -> str:
        return self.value.rsplit("_", 1)[0]

    @property
    def descending(self) -> bool:
        return self.value.endswith("_desc")


class Entry(BaseModel):
    """社区条目（只读投影）。"""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="条目 ID")
    author_id: str | None = Field(None, description="作者引用")
    author_name: str = Field("", description="匿名用户名")
    source_entry_id: str | None = Field(None, description="来源日记条目 ID")
    title: str = Field("", description="标题")
    body: str = Field("", description="正文")
    level: int = Field(..., ge=MIN_LEVEL, le=MAX_LEVEL, description="强度等级（1-10）")
    tags: tuple[str, ...] = Field(default=(), description="标签")
    wins: tuple[str, ...] = Field(default=(), description="小胜利列表")
    created_at: datetime = Field(..., description="创建时间")
    reaction_count: int = Field(0, ge=0, description="支持反应数")
    twin_count: int = Field(0, ge=0, description="相似条目数")
    is_reported: bool = Field(False, description="是否被举报")
    is_moderated: bool = Field(False, description="是否已审核")


class LevelRange(BaseModel):
    """强度等级闭区间。"""

    model_config = ConfigDict(frozen=True)

    min: int = Field(..., ge=MIN_LEVEL, le=MAX_LEVEL)
    max: int = Field(..., ge=MIN_LEVEL, le=MAX_LEVEL)

    @model_validator(mode="after")
    def check_order(self) -> "LevelRange":
        if self.min > self.max:
            raise ValueError(f"等级区间无效: {self.min} > {self.max}")
        return self

    def contains(self, level: int) -> bool:
        return self.min <= level <= self.max


class FeedFilter(BaseModel):
    """Feed 筛选条件（值对象）。

    tags 为空表示不限制标签；search_query 为空表示不搜索。
    """

    model_config = ConfigDict(frozen=True)

    time_window: TimeWindow = TimeWindow.ALL
    level_range: LevelRange | None = None
    tags: frozenset[str] = frozenset()
    sort_key: SortKey = SortKey.CREATED_DESC
    search_query: str = ""

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, v):
        """去除空白标签。"""
        if v is None:
            return frozenset()
        return frozenset(t.strip() for t in v if isinstance(t, str) and t.strip())

    @field_validator("search_query", mode="before")
    @classmethod
    def normalize_query(cls, v):
        return (v or "").strip()


@dataclass(frozen=True)
class PageWindow:
    """分页窗口。

    由 (page, page_size) 推导出的无状态偏移量，筛选条件变化后直接重新计算。
    """

    page: int
    page_size: int

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError(f"page 必须 >= 1: {self.page}")
        if self.page_size < 1:
            raise ValueError(f"page_size 必须 > 0: {self.page_size}")

    @property
    def start(self) -> int:
        """需要跳过的条数。"""
        return (self.page - 1) * self.page_size

    @property
    def end(self) -> int:
        """窗口结束位置（不含）。"""
        return self.page * self.page_size

    def fetch_limit(self, ceiling: int) -> int:
        """后端需要返回的文档数，受 ceiling 限制。"""
        return min(self.end, ceiling)

    def slice(self, items: list[T]) -> list[T]:
        """在本地丢弃前 start 条，取接下来的 page_size 条。"""
        return items[self.start : self.end]


@dataclass(frozen=True)
class PaginatedResponse(Generic[T]):
    """分页结果。

    total_count 为尽力估算，不代表真实总数。
    """

    items: list[T]
    page: int
    page_size: int
    total_count: int
    has_next: bool
    has_previous: bool

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError(f"page 必须 >= 1: {self.page}")
        if self.page_size < 1:
            raise ValueError(f"page_size 必须 > 0: {self.page_size}")
        if len(self.items) > self.page_size:
            raise ValueError(
                f"items 数量 {len(self.items)} 超过 page_size {self.page_size}"
            )

    @property
    def total_pages(self) -> int:
        """按估算总数计算的页数。"""
        return (self.total_count + self.page_size - 1) // self.page_size


@dataclass(frozen=True)
class FilterMetadata:
    """可筛选范围的元数据。"""

    popular_tags: tuple[str, ...]
    level_range: tuple[int, int]
    date_range: tuple[datetime, datetime] | None
