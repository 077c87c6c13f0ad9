"""文档存储模块。

提供文档存储抽象及其内存、SQL 两种实现。
"""

import logging

from src.store.base import (
    Document,
    DocumentStore,
    FieldFilter,
    FilterOp,
    OrderBy,
    StoreError,
    StoreErrorCode,
    StructuredQuery,
    WriteBatch,
)
from src.store.memory import InMemoryDocumentStore

logger = logging.getLogger(__name__)


def create_document_store() -> DocumentStore:
    """按配置创建文档存储。

    Returns:
        DocumentStore: 配置指定的存储实现
    """
    from src.config import get_settings

    settings = get_settings()
    if settings.document_store_backend == "memory":
        logger.info("使用内存文档存储")
        return InMemoryDocumentStore()

    from src.database.async_session import get_async_session_maker
    from src.store.sql import SqlDocumentStore

    logger.info("使用 SQL 文档存储: %s", settings.database_url)
    return SqlDocumentStore(get_async_session_maker())


__all__ = [
    "Document",
    "DocumentStore",
    "FieldFilter",
    "FilterOp",
    "InMemoryDocumentStore",
    "OrderBy",
    "StoreError",
    "StoreErrorCode",
    "StructuredQuery",
    "WriteBatch",
    "create_document_store",
]
