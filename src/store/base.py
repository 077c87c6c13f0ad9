"""文档存储抽象。

定义后端文档存储需要提供的最小能力：有序范围查询、数组成员查询、
文档读写以及批量内的原子数值增减。
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class StoreErrorCode(str, Enum):
    """存储错误码。"""

    UNAVAILABLE = "unavailable"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    PERMISSION_DENIED = "permission_denied"
    UNAUTHENTICATED = "unauthenticated"
    INVALID_ARGUMENT = "invalid_argument"
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    ABORTED = "aborted"
    INTERNAL = "internal"


class StoreError(Exception):
    """文档存储错误。"""

    def __init__(self, code: StoreErrorCode, message: str = "") -> None:
        """初始化存储错误。

        Args:
            code: 错误码
            message: 错误消息
        """
        self.code = code
        self.message = message or code.value
        super().__init__(self.message)


class DocumentNotFoundError(StoreError):
    """文档不存在。"""

    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(StoreErrorCode.NOT_FOUND, f"文档不存在: {collection}/{doc_id}")


class DocumentExistsError(StoreError):
    """文档已存在。"""

    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(StoreErrorCode.ALREADY_EXISTS, f"文档已存在: {collection}/{doc_id}")


class FilterOp(str, Enum):
    """查询过滤操作符。"""

    EQ = "=="
    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="
    ARRAY_CONTAINS_ANY = "array-contains-any"


RANGE_OPS = frozenset({FilterOp.LT, FilterOp.LTE, FilterOp.GT, FilterOp.GTE})


@dataclass(frozen=True)
class FieldFilter:
    """字段过滤条件。"""

    field: str
    op: FilterOp
    value: Any


@dataclass(frozen=True)
class OrderBy:
    """排序条件。"""

    field: str
    descending: bool = False


@dataclass(frozen=True)
class StructuredQuery:
    """结构化查询。

    filters 和 order_by 均为元组，保证查询对象可比较、可哈希。
    limit 为 None 表示不限制。
    """

    collection: str
    filters: tuple[FieldFilter, ...] = ()
    order_by: tuple[OrderBy, ...] = ()
    limit: int | None = None

    def with_limit(self, limit: int) -> "StructuredQuery":
        """返回带新 limit 的查询副本。"""
        return StructuredQuery(
            collection=self.collection,
            filters=self.filters,
            order_by=self.order_by,
            limit=limit,
        )


@dataclass(frozen=True)
class Document:
    """文档快照。"""

    collection: str
    id: str
    data: dict[str, Any]


# ==================== 写操作 ====================


@dataclass(frozen=True)
class CreateOp:
    """创建文档，文档已存在时失败。"""

    collection: str
    doc_id: str
    data: dict[str, Any]


@dataclass(frozen=True)
class SetOp:
    """写入（覆盖）文档。"""

    collection: str
    doc_id: str
    data: dict[str, Any]


@dataclass(frozen=True)
class UpdateOp:
    """合并更新字段，文档不存在时失败。"""

    collection: str
    doc_id: str
    fields: dict[str, Any]


@dataclass(frozen=True)
class DeleteOp:
    """删除文档，文档不存在时忽略。"""

    collection: str
    doc_id: str


@dataclass(frozen=True)
class IncrementOp:
    """原子数值增减。

    upsert 为 True 时文档不存在会被创建；否则文档不存在时失败。
    """

    collection: str
    doc_id: str
    field: str
    delta: int
    upsert: bool = False


WriteOp = Union[CreateOp, SetOp, UpdateOp, DeleteOp, IncrementOp]


@dataclass
class WriteBatch:
    """批量写入。

    同一批次内的操作作为一个整体提交。
    """

    ops: list[WriteOp] = field(default_factory=list)

    def create(self, collection: str, doc_id: str, data: dict[str, Any]) -> "WriteBatch":
        self.ops.append(CreateOp(collection, doc_id, dict(data)))
        return self

    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> "WriteBatch":
        self.ops.append(SetOp(collection, doc_id, dict(data)))
        return self

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> "WriteBatch":
        self.ops.append(UpdateOp(collection, doc_id, dict(fields)))
        return self

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        self.ops.append(DeleteOp(collection, doc_id))
        return self

    def increment(
        self,
        collection: str,
        doc_id: str,
        field_name: str,
        delta: int,
        upsert: bool = False,
    ) -> "WriteBatch":
        self.ops.append(IncrementOp(collection, doc_id, field_name, delta, upsert))
        return self

    def __len__(self) -> int:
        return len(self.ops)


class DocumentStore(ABC):
    """文档存储接口。"""

    # 是否能把一个批次作为整体原子提交
    atomic_batches: bool = True

    @abstractmethod
    async def query(self, query: StructuredQuery) -> list[Document]:
        """执行结构化查询。"""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Document | None:
        """读取单个文档，不存在时返回 None。"""

    async def exists(self, collection: str, doc_id: str) -> bool:
        """检查文档是否存在。"""
        return await self.get(collection, doc_id) is not None

    @abstractmethod
    async def commit(self, batch: WriteBatch) -> None:
        """提交批量写入。

        atomic_batches 为 True 时，批次内操作要么全部生效，要么全部不生效。
        """

    @abstractmethod
    async def count(self, collection: str) -> int:
        """统计集合内的文档数。"""

    async def close(self) -> None:
        """释放存储资源。"""
        return None
