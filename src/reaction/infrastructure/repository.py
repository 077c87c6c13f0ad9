"""ReactionRepository - 支持反应数据访问层。

每次状态转换的写入（反应记录 + 条目计数）在一个批次中提交，
保证计数与反应记录是否存在不会出现偏差。后端不支持原子批次时，
逐条写入并在失败时对已生效的写入做补偿。
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from src.feed.infrastructure.mapper import F_REACTION_COUNT, to_epoch_millis
from src.feed.infrastructure.repository import (
    COLLECTION_ENTRIES,
    COLLECTION_REACTIONS,
    COLLECTION_USERS,
)
from src.reaction.domain.models import ReactionType
from src.store.base import (
    CreateOp,
    DeleteOp,
    DocumentNotFoundError,
    DocumentStore,
    FieldFilter,
    FilterOp,
    IncrementOp,
    SetOp,
    StructuredQuery,
    UpdateOp,
    WriteBatch,
    WriteOp,
)

logger = logging.getLogger(__name__)

F_POST_ID = "postId"
F_USER_ID = "userId"
F_SUPPORT_TYPE = "supportType"
F_SUPPORT_GIVEN = "supportGiven"


def reaction_doc_id(entry_id: str, user_id: str) -> str:
    """新反应记录使用的确定性文档 ID。"""
    return f"{entry_id}_{user_id}"


@dataclass(frozen=True)
class UserReaction:
    """用户在某条目上的已有反应。"""

    doc_id: str
    reaction_type: ReactionType | None
    raw_type: str | None


class ReactionRepository:
    """支持反应仓库。

    写入失败时抛出存储层异常，由调用方负责回滚本地状态。
    """

    def __init__(self, store: DocumentStore, track_user_stats: bool = True) -> None:
        """初始化仓库。

        Args:
            store: 文档存储
            track_user_stats: 是否同步更新用户 supportGiven 计数
        """
        self._store = store
        self._track_user_stats = track_user_stats

    # ==================== 查询 ====================

    async def get_reaction_count(self, entry_id: str) -> int | None:
        """读取条目的反应计数，条目不存在时返回 None。"""
        doc = await self._store.get(COLLECTION_ENTRIES, entry_id)
        if doc is None:
            return None
        value = doc.data.get(F_REACTION_COUNT, 0)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return 0
        return max(int(value), 0)

    async def find_user_reaction(self, entry_id: str, user_id: str) -> UserReaction | None:
        """查找用户在条目上的反应。

        先按确定性 ID 读取，找不到时按 (postId, userId) 查询旧记录。
        """
        doc = await self._store.get(COLLECTION_REACTIONS, reaction_doc_id(entry_id, user_id))
        if doc is None:
            docs = await self._store.query(
                StructuredQuery(
                    collection=COLLECTION_REACTIONS,
                    filters=(
                        FieldFilter(F_POST_ID, FilterOp.EQ, entry_id),
                        FieldFilter(F_USER_ID, FilterOp.EQ, user_id),
                    ),
                    limit=1,
                )
            )
            if not docs:
                return None
            doc = docs[0]

        raw_type = doc.data.get(F_SUPPORT_TYPE)
        reaction_type = ReactionType.from_string(raw_type)
        if reaction_type is None:
            logger.warning("未知的反应类型: %r (doc=%s)", raw_type, doc.id)
        return UserReaction(doc.id, reaction_type, raw_type if isinstance(raw_type, str) else None)

    # ==================== 写入 ====================

    async def give(self, entry_id: str, user_id: str, reaction_type: ReactionType) -> bool:
        """创建反应记录并将条目计数 +1。

        用户已有一条无法识别类型的旧记录时，原地改写该记录的类型，
        计数不变（旧记录已经计入过 supportCount）。

        Returns:
            bool: 是否新建了记录（False 表示改写了旧记录，计数未变）

        Raises:
            DocumentNotFoundError: 条目不存在
            DocumentExistsError: 用户已有有效的反应记录
        """
        if not await self._store.exists(COLLECTION_ENTRIES, entry_id):
            raise DocumentNotFoundError(COLLECTION_ENTRIES, entry_id)

        now_ms = to_epoch_millis(datetime.now(timezone.utc))
        existing = await self.find_user_reaction(entry_id, user_id)
        if existing is not None and existing.reaction_type is None:
            batch = WriteBatch().update(
                COLLECTION_REACTIONS,
                existing.doc_id,
                {F_SUPPORT_TYPE: reaction_type.value, "updatedAt": now_ms},
            )
            await self._commit(batch)
            logger.info(
                "改写未知类型的旧反应记录: doc=%s, raw_type=%r, type=%s",
                existing.doc_id,
                existing.raw_type,
                reaction_type.value,
            )
            return False

        batch = (
            WriteBatch()
            .create(
                COLLECTION_REACTIONS,
                reaction_doc_id(entry_id, user_id),
                {
                    F_POST_ID: entry_id,
                    F_USER_ID: user_id,
                    F_SUPPORT_TYPE: reaction_type.value,
                    "createdAt": now_ms,
                },
            )
            .increment(COLLECTION_ENTRIES, entry_id, F_REACTION_COUNT, 1)
        )
        if self._track_user_stats:
            batch.increment(COLLECTION_USERS, user_id, F_SUPPORT_GIVEN, 1, upsert=True)

        await self._commit(batch)
        logger.debug("反应已创建: entry_id=%s, user_id=%s, type=%s", entry_id, user_id, reaction_type.value)
        return True

    async def change(self, entry_id: str, user_id: str, reaction_type: ReactionType) -> None:
        """修改已有反应的类型，计数不变。

        Raises:
            DocumentNotFoundError: 用户没有反应记录
        """
        existing = await self.find_user_reaction(entry_id, user_id)
        if existing is None:
            raise DocumentNotFoundError(COLLECTION_REACTIONS, reaction_doc_id(entry_id, user_id))

        batch = WriteBatch().update(
            COLLECTION_REACTIONS,
            existing.doc_id,
            {
                F_SUPPORT_TYPE: reaction_type.value,
                "updatedAt": to_epoch_millis(datetime.now(timezone.utc)),
            },
        )
        await self._commit(batch)
        logger.debug("反应类型已修改: entry_id=%s, user_id=%s, type=%s", entry_id, user_id, reaction_type.value)

    async def remove(self, entry_id: str, user_id: str) -> None:
        """删除反应记录并将条目计数 -1。

        Raises:
            DocumentNotFoundError: 用户没有反应记录
        """
        existing = await self.find_user_reaction(entry_id, user_id)
        if existing is None:
            raise DocumentNotFoundError(COLLECTION_REACTIONS, reaction_doc_id(entry_id, user_id))

        batch = (
            WriteBatch()
            .delete(COLLECTION_REACTIONS, existing.doc_id)
            .increment(COLLECTION_ENTRIES, entry_id, F_REACTION_COUNT, -1)
        )
        if self._track_user_stats:
            batch.increment(COLLECTION_USERS, user_id, F_SUPPORT_GIVEN, -1, upsert=True)

        await self._commit(batch)
        logger.debug("反应已删除: entry_id=%s, user_id=%s", entry_id, user_id)

    async def _commit(self, batch: WriteBatch) -> None:
        if self._store.atomic_batches:
            await self._store.commit(batch)
            return
        await self._commit_with_compensation(batch)

    async def _commit_with_compensation(self, batch: WriteBatch) -> None:
        """逐条提交，失败时逆序撤销已生效的写入后重新抛出原异常。"""
        undo: list[WriteOp] = []
        for op in batch.ops:
            inverse = await self._inverse_of(op)
            try:
                await self._store.commit(WriteBatch([op]))
            except Exception:
                logger.warning("批次部分失败，开始补偿 %d 个已生效的写入", len(undo))
                for compensation in reversed(undo):
                    try:
                        await self._store.commit(WriteBatch([compensation]))
                    except Exception as comp_error:
                        logger.error("补偿写入失败: %r, error=%s", compensation, comp_error)
                raise
            if inverse is not None:
                undo.append(inverse)

    async def _inverse_of(self, op: WriteOp) -> WriteOp | None:
        """计算写操作的逆操作（在写入前读取原文档）。"""
        previous = await self._store.get(op.collection, op.doc_id)

        if isinstance(op, CreateOp):
            return DeleteOp(op.collection, op.doc_id)
        if isinstance(op, IncrementOp):
            if previous is None:
                return DeleteOp(op.collection, op.doc_id)
            return IncrementOp(op.collection, op.doc_id, op.field, -op.delta, upsert=False)
        if isinstance(op, (SetOp, UpdateOp, DeleteOp)):
            if previous is None:
                return DeleteOp(op.collection, op.doc_id) if isinstance(op, SetOp) else None
            return SetOp(op.collection, op.doc_id, previous.data)
        return None
