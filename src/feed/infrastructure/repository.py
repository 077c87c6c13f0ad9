"""EntryRepository - 社区条目数据访问层。

封装社区条目集合的查询、读取、分享和举报操作。
"""

import logging
import uuid
from datetime import datetime, timezone

from src.feed.domain.models import Entry
from src.feed.infrastructure.mapper import (
    F_IS_REPORTED,
    EntryDecodeError,
    decode_entry,
    encode_entry,
    to_epoch_millis,
)
from src.monitoring import backend_fetches_total, record
from src.store.base import Document, DocumentStore, StructuredQuery, WriteBatch

logger = logging.getLogger(__name__)

COLLECTION_ENTRIES = "community_feed"
COLLECTION_REPORTS = "reports"
COLLECTION_REACTIONS = "support_reactions"
COLLECTION_USERS = "users"


class EntryRepository:
    """社区条目仓库。

    存储层异常原样向上抛出，由服务层归类为 FetchError。
    """

    def __init__(self, store: DocumentStore) -> None:
        """初始化仓库。

        Args:
            store: 文档存储
        """
        self._store = store

    @property
    def store(self) -> DocumentStore:
        return self._store

    async def query_documents(self, query: StructuredQuery, operation: str) -> list[Document]:
        """执行查询并返回原始文档。

        Args:
            query: 结构化查询
            operation: 调用方名称，用于指标标签
        """
        record(backend_fetches_total, operation=operation)
        return await self._store.query(query)

    async def query_entries(self, query: StructuredQuery, operation: str) -> list[Entry]:
        """执行查询并解码为条目，无法解码的文档被跳过。"""
        documents = await self.query_documents(query, operation)
        return self.decode_documents(documents)

    @staticmethod
    def decode_documents(documents: list[Document]) -> list[Entry]:
        entries: list[Entry] = []
        for doc in documents:
            try:
                entries.append(decode_entry(doc.id, doc.data))
            except EntryDecodeError as e:
                logger.warning("跳过无法解码的条目: %s", e)
        return entries

    async def get_entry(self, entry_id: str) -> Entry | None:
        """读取单个条目，不存在或无法解码时返回 None。"""
        record(backend_fetches_total, operation="get_entry")
        doc = await self._store.get(COLLECTION_ENTRIES, entry_id)
        if doc is None:
            return None
        try:
            return decode_entry(doc.id, doc.data)
        except EntryDecodeError as e:
            logger.warning("条目无法解码: %s", e)
            return None

    async def entry_exists(self, entry_id: str) -> bool:
        return await self._store.exists(COLLECTION_ENTRIES, entry_id)

    async def create_entry(self, entry: Entry) -> str:
        """把条目分享到社区集合。

        entry.id 为空时生成新 ID。

        Returns:
            str: 条目 ID
        """
        entry_id = entry.id or uuid.uuid4().hex
        if entry_id != entry.id:
            entry = entry.model_copy(update={"id": entry_id})

        batch = WriteBatch().create(COLLECTION_ENTRIES, entry_id, encode_entry(entry))
        await self._store.commit(batch)
        logger.info("条目已分享: id=%s, level=%d, tags=%s", entry_id, entry.level, list(entry.tags))
        return entry_id

    async def report_entry(self, entry_id: str, user_id: str, reason: str) -> str:
        """举报条目。

        在同一批次中创建待处理的举报记录并标记条目 isReported。

        Returns:
            str: 举报记录 ID
        """
        report_id = uuid.uuid4().hex
        batch = (
            WriteBatch()
            .create(
                COLLECTION_REPORTS,
                report_id,
                {
                    "postId": entry_id,
                    "reportedBy": user_id,
                    "reason": reason,
                    "createdAt": to_epoch_millis(datetime.now(timezone.utc)),
                    "status": "pending",
                },
            )
            .update(COLLECTION_ENTRIES, entry_id, {F_IS_REPORTED: True})
        )
        await self._store.commit(batch)
        logger.info("条目已举报: entry_id=%s, report_id=%s", entry_id, report_id)
        return report_id

    async def community_stats(self) -> dict[str, int]:
        """统计社区条目数和支持反应数。"""
        record(backend_fetches_total, operation="stats")
        total_entries = await self._store.count(COLLECTION_ENTRIES)
        total_reactions = await self._store.count(COLLECTION_REACTIONS)
        return {"total_entries": total_entries, "total_reactions": total_reactions}
