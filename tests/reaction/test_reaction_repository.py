"""ReactionRepository 测试：批次写入与补偿。"""

import pytest

from src.reaction.domain.models import ReactionType
from src.reaction.infrastructure.repository import ReactionRepository, reaction_doc_id
from src.store.base import (
    DocumentExistsError,
    DocumentNotFoundError,
    StoreError,
    StoreErrorCode,
    WriteBatch,
)
from src.store.memory import InMemoryDocumentStore


class FailingCollectionStore(InMemoryDocumentStore):
    """写入指定集合时失败的内存存储。"""

    def __init__(self, failing_collection: str, atomic_batches: bool) -> None:
        super().__init__(atomic_batches=atomic_batches)
        self.failing_collection = failing_collection
        self.enabled = True

    async def commit(self, batch: WriteBatch) -> None:
        if self.enabled and any(op.collection == self.failing_collection for op in batch.ops):
            if self.atomic_batches:
                raise StoreError(StoreErrorCode.UNAVAILABLE, "offline")
            # 非原子存储：失败操作之前的写入已生效
            for op in batch.ops:
                if op.collection == self.failing_collection:
                    raise StoreError(StoreErrorCode.UNAVAILABLE, "offline")
                await super().commit(WriteBatch([op]))
            return
        await super().commit(batch)


@pytest.fixture
def store(make_doc):
    store = InMemoryDocumentStore()
    store.seed("community_feed", "p1", make_doc(5, ["work"]))
    return store


class TestGive:
    """创建反应。"""

    async def test_give_writes_reaction_and_counts(self, store):
        repository = ReactionRepository(store)

        await repository.give("p1", "u1", ReactionType.HOPE)

        reaction = await store.get("support_reactions", reaction_doc_id("p1", "u1"))
        assert reaction.data["postId"] == "p1"
        assert reaction.data["supportType"] == "HOPE"
        assert await repository.get_reaction_count("p1") == 1
        assert (await store.get("users", "u1")).data["supportGiven"] == 1

    async def test_user_stats_optional(self, store):
        await ReactionRepository(store, track_user_stats=False).give("p1", "u1", ReactionType.HOPE)

        assert await store.get("users", "u1") is None

    async def test_second_give_rejected_by_store(self, store):
        repository = ReactionRepository(store)
        await repository.give("p1", "u1", ReactionType.HEART)

        with pytest.raises(DocumentExistsError):
            await repository.give("p1", "u1", ReactionType.HUG)

        assert await repository.get_reaction_count("p1") == 1

    async def test_missing_entry(self, store):
        with pytest.raises(DocumentNotFoundError):
            await ReactionRepository(store).give("nope", "u1", ReactionType.HEART)

    @pytest.mark.parametrize("doc_id", [reaction_doc_id("p1", "u1"), "legacy-doc"])
    async def test_give_rewrites_unknown_type_record(self, store, doc_id):
        store.seed("support_reactions", doc_id, {"postId": "p1", "userId": "u1", "supportType": "CONFETTI"})
        store.seed("community_feed", "p1", {**(await store.get("community_feed", "p1")).data, "supportCount": 1})
        repository = ReactionRepository(store)

        created = await repository.give("p1", "u1", ReactionType.HEART)

        assert created is False
        assert (await store.get("support_reactions", doc_id)).data["supportType"] == "HEART"
        assert await store.count("support_reactions") == 1
        assert await repository.get_reaction_count("p1") == 1
        assert await store.get("users", "u1") is None

    async def test_give_reports_new_record(self, store):
        assert await ReactionRepository(store).give("p1", "u1", ReactionType.HOPE) is True


class TestChangeAndRemove:
    """修改与删除。"""

    async def test_change_without_reaction(self, store):
        with pytest.raises(DocumentNotFoundError):
            await ReactionRepository(store).change("p1", "u1", ReactionType.HUG)

    async def test_remove_legacy_document(self, store):
        store.seed("support_reactions", "random-id", {"postId": "p1", "userId": "u1", "supportType": "HEART"})
        store.seed("community_feed", "p1", {**(await store.get("community_feed", "p1")).data, "supportCount": 1})
        repository = ReactionRepository(store, track_user_stats=False)

        await repository.remove("p1", "u1")

        assert await store.get("support_reactions", "random-id") is None
        assert await repository.get_reaction_count("p1") == 0

    async def test_unknown_legacy_type(self, store):
        store.seed("support_reactions", reaction_doc_id("p1", "u1"), {"postId": "p1", "userId": "u1", "supportType": "CONFETTI"})

        existing = await ReactionRepository(store).find_user_reaction("p1", "u1")

        assert existing.reaction_type is None
        assert existing.raw_type == "CONFETTI"


class TestPartialFailure:
    """批次中途失败时计数与反应记录保持一致。"""

    @pytest.mark.parametrize("atomic", [True, False])
    async def test_give_failure_leaves_no_trace(self, make_doc, atomic):
        store = FailingCollectionStore("users", atomic_batches=atomic)
        store.seed("community_feed", "p1", make_doc(5, ["work"]))
        repository = ReactionRepository(store)

        with pytest.raises(StoreError):
            await repository.give("p1", "u1", ReactionType.HEART)

        assert await store.get("support_reactions", reaction_doc_id("p1", "u1")) is None
        assert await repository.get_reaction_count("p1") == 0

    async def test_remove_failure_restores_reaction(self, make_doc):
        store = FailingCollectionStore("users", atomic_batches=False)
        store.enabled = False
        store.seed("community_feed", "p1", make_doc(5, ["work"]))
        repository = ReactionRepository(store)
        await repository.give("p1", "u1", ReactionType.HUG)
        store.enabled = True

        with pytest.raises(StoreError):
            await repository.remove("p1", "u1")

        reaction = await store.get("support_reactions", reaction_doc_id("p1", "u1"))
        assert reaction.data["supportType"] == "HUG"
        assert await repository.get_reaction_count("p1") == 1
