"""SQL 文档存储。

基于 SQLAlchemy 异步会话实现 DocumentStore。文档以 JSON 保存在 documents 表，
列表字段的元素额外写入 document_array_values 表以支持数组成员查询。
一个批次对应一个数据库事务。
"""

import json
import logging
from typing import Any

from sqlalchemy import ColumnElement, delete, func, select
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.database.models import DocumentArrayValueOrm, DocumentOrm
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
    WriteOp,
    WriteBatch,
)

logger = logging.getLogger(__name__)


def _encode_array_value(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True)


def _field_expression(field: str, sample: Any) -> ColumnElement:
    """根据比较值的类型选择 JSON 字段的取值表达式。"""
    element = DocumentOrm.data[field]
    if isinstance(sample, bool):
        return element.as_boolean()
    if isinstance(sample, (int, float)):
        return element.as_float()
    return element.as_string()


def _filter_clause(collection: str, f: FieldFilter) -> ColumnElement:
    if f.op is FilterOp.ARRAY_CONTAINS_ANY:
        values = [_encode_array_value(v) for v in f.value]
        member_ids = select(DocumentArrayValueOrm.doc_id).where(
            DocumentArrayValueOrm.collection == collection,
            DocumentArrayValueOrm.field == f.field,
            DocumentArrayValueOrm.value.in_(values),
        )
        return DocumentOrm.doc_id.in_(member_ids)

    expr = _field_expression(f.field, f.value)
    if f.op is FilterOp.EQ:
        return expr == f.value
    if f.op is FilterOp.LT:
        return expr < f.value
    if f.op is FilterOp.LTE:
        return expr <= f.value
    if f.op is FilterOp.GT:
        return expr > f.value
    if f.op is FilterOp.GTE:
        return expr >= f.value
    raise StoreError(StoreErrorCode.INVALID_ARGUMENT, f"不支持的操作符: {f.op}")


def _translate_error(e: Exception) -> StoreError:
    if isinstance(e, StoreError):
        return e
    if isinstance(e, IntegrityError):
        return StoreError(StoreErrorCode.ALREADY_EXISTS, f"写入冲突: {e.orig}")
    if isinstance(e, OperationalError):
        return StoreError(StoreErrorCode.UNAVAILABLE, f"数据库不可用: {e.orig}")
    if isinstance(e, DBAPIError):
        return StoreError(StoreErrorCode.INTERNAL, f"数据库错误: {e.orig}")
    return StoreError(StoreErrorCode.INTERNAL, str(e))


class SqlDocumentStore(DocumentStore):
    """SQL 文档存储。

    排序仅支持数值字段（按浮点数比较）。
    """

    atomic_batches = True

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        """初始化存储。

        Args:
            session_maker: 异步会话工厂
        """
        self._session_maker = session_maker

    # ==================== 读取 ====================

    async def query(self, query: StructuredQuery) -> list[Document]:
        stmt = select(DocumentOrm).where(DocumentOrm.collection == query.collection)
        for f in query.filters:
            stmt = stmt.where(_filter_clause(query.collection, f))

        for order in query.order_by:
            expr = DocumentOrm.data[order.field].as_float()
            stmt = stmt.where(expr.is_not(None))
            stmt = stmt.order_by(expr.desc() if order.descending else expr.asc())
        stmt = stmt.order_by(DocumentOrm.doc_id.asc())

        if query.limit is not None:
            stmt = stmt.limit(query.limit)

        try:
            async with self._session_maker() as session:
                result = await session.execute(stmt)
                rows = result.scalars().all()
        except Exception as e:
            raise _translate_error(e) from e

        return [Document(row.collection, row.doc_id, dict(row.data)) for row in rows]

    async def get(self, collection: str, doc_id: str) -> Document | None:
        try:
            async with self._session_maker() as session:
                row = await session.get(DocumentOrm, (collection, doc_id))
        except Exception as e:
            raise _translate_error(e) from e

        if row is None:
            return None
        return Document(row.collection, row.doc_id, dict(row.data))

    async def count(self, collection: str) -> int:
        stmt = (
            select(func.count())
            .select_from(DocumentOrm)
            .where(DocumentOrm.collection == collection)
        )
        try:
            async with self._session_maker() as session:
                result = await session.execute(stmt)
                return result.scalar() or 0
        except Exception as e:
            raise _translate_error(e) from e

    # ==================== 写入 ====================

    async def commit(self, batch: WriteBatch) -> None:
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    for op in batch.ops:
                        await self._apply(session, op)
        except StoreError:
            raise
        except Exception as e:
            logger.debug("批次提交失败，事务已回滚: %s", e)
            raise _translate_error(e) from e

    async def _apply(self, session: AsyncSession, op: WriteOp) -> None:
        row = await session.get(DocumentOrm, (op.collection, op.doc_id))

        if isinstance(op, CreateOp):
            if row is not None:
                raise DocumentExistsError(op.collection, op.doc_id)
            session.add(DocumentOrm(collection=op.collection, doc_id=op.doc_id, data=dict(op.data)))
            await self._sync_array_values(session, op.collection, op.doc_id, op.data)

        elif isinstance(op, SetOp):
            if row is None:
                session.add(DocumentOrm(collection=op.collection, doc_id=op.doc_id, data=dict(op.data)))
            else:
                row.data = dict(op.data)
            await self._sync_array_values(session, op.collection, op.doc_id, op.data)

        elif isinstance(op, UpdateOp):
            if row is None:
                raise DocumentNotFoundError(op.collection, op.doc_id)
            merged = {**row.data, **op.fields}
            row.data = merged
            await self._sync_array_values(session, op.collection, op.doc_id, merged)

        elif isinstance(op, DeleteOp):
            if row is not None:
                await session.delete(row)
            await session.execute(
                delete(DocumentArrayValueOrm).where(
                    DocumentArrayValueOrm.collection == op.collection,
                    DocumentArrayValueOrm.doc_id == op.doc_id,
                )
            )

        elif isinstance(op, IncrementOp):
            if row is None:
                if not op.upsert:
                    raise DocumentNotFoundError(op.collection, op.doc_id)
                session.add(
                    DocumentOrm(collection=op.collection, doc_id=op.doc_id, data={op.field: op.delta})
                )
            else:
                data = dict(row.data)
                current = data.get(op.field, 0)
                if isinstance(current, bool) or not isinstance(current, (int, float)):
                    current = 0
                data[op.field] = current + op.delta
                row.data = data

        else:
            raise StoreError(StoreErrorCode.INVALID_ARGUMENT, f"未知写操作: {op!r}")

        await session.flush()

    @staticmethod
    async def _sync_array_values(
        session: AsyncSession,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
    ) -> None:
        """重建文档的数组字段索引行。"""
        await session.execute(
            delete(DocumentArrayValueOrm).where(
                DocumentArrayValueOrm.collection == collection,
                DocumentArrayValueOrm.doc_id == doc_id,
            )
        )
        for field, value in data.items():
            if not isinstance(value, list):
                continue
            for item in value:
                if isinstance(item, (dict, list)):
                    continue
                session.add(
                    DocumentArrayValueOrm(
                        collection=collection,
                        doc_id=doc_id,
                        field=field,
                        value=_encode_array_value(item),
                    )
                )
