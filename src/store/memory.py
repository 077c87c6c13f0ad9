"""内存文档存储。

在进程内实现 DocumentStore，用于开发环境和测试。
查询语义与托管文档数据库保持一致：缺少过滤或排序字段的文档不会出现在结果中。
"""

import asyncio
import copy
import logging
from typing import Any

from src.store.base import (
    CreateOp,
    DeleteOp,
    Document,
    DocumentExistsError,
    DocumentNotFoundError,
    DocumentStore,
    FieldFilter,
    FilterOp,
    IncrementOp,
    SetOp,
    StoreError,
    StoreErrorCode,
    StructuredQuery,
    UpdateOp,
    WriteBatch,
    WriteOp,
)

logger = logging.getLogger(__name__)

_MISSING = object()


def _compare(op: FilterOp, actual: Any, expected: Any) -> bool:
    """比较字段值，类型不兼容时视为不匹配。"""
    if op is FilterOp.ARRAY_CONTAINS_ANY:
        if not isinstance(actual, list):
            return False
        return any(item in actual for item in expected)

    if op is FilterOp.EQ:
        return actual == expected

    # bool 是 int 的子类，范围比较时需要排除
    if isinstance(actual, bool) or isinstance(expected, bool):
        return False
    try:
        if op is FilterOp.LT:
            return actual < expected
        if op is FilterOp.LTE:
            return actual <= expected
        if op is FilterOp.GT:
            return actual > expected
        if op is FilterOp.GTE:
            return actual >= expected
    except TypeError:
        return False
    raise StoreError(StoreErrorCode.INVALID_ARGUMENT, f"不支持的操作符: {op}")


def _matches(data: dict[str, Any], filters: tuple[FieldFilter, ...]) -> bool:
    for f in filters:
        actual = data.get(f.field, _MISSING)
        if actual is _MISSING or actual is None:
            return False
        if not _compare(f.op, actual, f.value):
            return False
    return True


class InMemoryDocumentStore(DocumentStore):
    """内存文档存储。

    数据结构为 {collection: {doc_id: data}}。
    """

    def __init__(self, atomic_batches: bool = True) -> None:
        """初始化存储。

        Args:
            atomic_batches: 是否原子提交批次。为 False 时逐条应用操作，
                失败时已应用的操作保留，用于模拟不支持事务的后端。
        """
        self.atomic_batches = atomic_batches
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = asyncio.Lock()

    # ==================== 读取 ====================

    async def query(self, query: StructuredQuery) -> list[Document]:
        docs = self._collections.get(query.collection, {})
        # 按文档 ID 预排序，作为排序字段相同时的稳定次序
        matched = [
            (doc_id, data)
            for doc_id, data in sorted(docs.items())
            if _matches(data, query.filters)
        ]

        # 排序字段缺失的文档被排除
        for order in query.order_by:
            matched = [
                (doc_id, data)
                for doc_id, data in matched
                if data.get(order.field) is not None
            ]

        # 多字段排序：从最低优先级开始做稳定排序
        for order in reversed(query.order_by):
            try:
                matched.sort(key=lambda item: item[1][order.field], reverse=order.descending)
            except TypeError as e:
                raise StoreError(
                    StoreErrorCode.INVALID_ARGUMENT,
                    f"排序字段类型不一致: {order.field}",
                ) from e

        if query.limit is not None:
            matched = matched[: query.limit]

        return [
            Document(query.collection, doc_id, copy.deepcopy(data))
            for doc_id, data in matched
        ]

    async def get(self, collection: str, doc_id: str) -> Document | None:
        data = self._collections.get(collection, {}).get(doc_id)
        if data is None:
            return None
        return Document(collection, doc_id, copy.deepcopy(data))

    async def count(self, collection: str) -> int:
        return len(self._collections.get(collection, {}))

    # ==================== 写入 ====================

    async def commit(self, batch: WriteBatch) -> None:
        async with self._lock:
            if not self.atomic_batches:
                for op in batch.ops:
                    self._apply(self._collections, op)
                return

            # 写时复制：全部成功后才替换
            staged = copy.deepcopy(self._collections)
            for op in batch.ops:
                self._apply(staged, op)
            self._collections = staged

    def seed(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """直接写入文档（绕过批次），用于初始化数据。"""
        self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(data)

    @staticmethod
    def _apply(collections: dict[str, dict[str, dict[str, Any]]], op: WriteOp) -> None:
        docs = collections.setdefault(op.collection, {})

        if isinstance(op, CreateOp):
            if op.doc_id in docs:
                raise DocumentExistsError(op.collection, op.doc_id)
            docs[op.doc_id] = copy.deepcopy(op.data)

        elif isinstance(op, SetOp):
            docs[op.doc_id] = copy.deepcopy(op.data)

        elif isinstance(op, UpdateOp):
            if op.doc_id not in docs:
                raise DocumentNotFoundError(op.collection, op.doc_id)
            docs[op.doc_id].update(copy.deepcopy(op.fields))

        elif isinstance(op, DeleteOp):
            docs.pop(op.doc_id, None)

        elif isinstance(op, IncrementOp):
            data = docs.get(op.doc_id)
            if data is None:
                if not op.upsert:
                    raise DocumentNotFoundError(op.collection, op.doc_id)
                data = docs[op.doc_id] = {}
            current = data.get(op.field, 0)
            if isinstance(current, bool) or not isinstance(current, (int, float)):
                current = 0
            data[op.field] = current + op.delta

        else:
            raise StoreError(StoreErrorCode.INVALID_ARGUMENT, f"未知写操作: {op!r}")
