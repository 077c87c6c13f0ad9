"""ReactionController 状态机测试。"""

import asyncio

import pytest

from src.feed.domain.errors import ErrorKind
from src.reaction.domain.models import (
    FailureReason,
    ReactionOutcomeKind,
    ReactionStatus,
    ReactionType,
)
from src.reaction.infrastructure.repository import ReactionRepository
from src.reaction.services.reaction_controller import ReactionController
from src.store.base import FieldFilter, FilterOp, StoreError, StoreErrorCode, StructuredQuery

ENTRY = "e01"
USER = "u1"


@pytest.fixture
def controller(counting_store):
    return ReactionController(ReactionRepository(counting_store))


async def entry_count(store, entry_id=ENTRY) -> int:
    return (await store.get("community_feed", entry_id)).data["supportCount"]


class TestLoad:
    """从后端加载本地状态。"""

    async def test_no_reaction(self, controller):
        state = (await controller.load(ENTRY, USER)).unwrap()

        assert state.status is ReactionStatus.NO_REACTION
        assert state.displayed_count == 0
        assert controller.state(ENTRY, USER) == state

    async def test_legacy_reaction_found_by_query(self, controller, seeded_store):
        seeded_store.seed(
            "support_reactions",
            "legacy-doc",
            {"postId": ENTRY, "userId": USER, "supportType": "hug"},
        )

        state = (await controller.load(ENTRY, USER)).unwrap()

        assert state.status is ReactionStatus.REACTED
        assert state.current_type is ReactionType.HUG

    async def test_missing_entry(self, controller):
        error = (await controller.load("missing", USER)).failure()

        assert error.kind == ErrorKind.NOT_FOUND


class TestReact:
    """状态转换。"""

    async def test_first_reaction_applied(self, controller, seeded_store):
        outcome = await controller.react(ENTRY, USER, ReactionType.HEART)

        assert outcome.kind is ReactionOutcomeKind.APPLIED
        assert outcome.state.status is ReactionStatus.REACTED
        assert outcome.state.current_type is ReactionType.HEART
        assert outcome.state.displayed_count == 1
        assert await entry_count(seeded_store) == 1
        reaction = await seeded_store.get("support_reactions", f"{ENTRY}_{USER}")
        assert reaction.data["supportType"] == "HEART"
        user = await seeded_store.get("users", USER)
        assert user.data["supportGiven"] == 1

    async def test_change_type_keeps_count(self, controller, seeded_store):
        await controller.react(ENTRY, USER, ReactionType.HEART)

        outcome = await controller.react(ENTRY, USER, "hope")

        assert outcome.kind is ReactionOutcomeKind.CHANGED
        assert outcome.state.current_type is ReactionType.HOPE
        assert outcome.state.displayed_count == 1
        assert await entry_count(seeded_store) == 1
        reaction = await seeded_store.get("support_reactions", f"{ENTRY}_{USER}")
        assert reaction.data["supportType"] == "HOPE"

    async def test_same_type_needs_confirmation(self, controller, counting_store):
        await controller.react(ENTRY, USER, ReactionType.HEART)
        commits_before = len(counting_store.commits)

        outcome = await controller.react(ENTRY, USER, ReactionType.HEART)

        assert outcome.kind is ReactionOutcomeKind.REMOVAL_NEEDS_CONFIRMATION
        assert outcome.state.status is ReactionStatus.REACTED
        assert outcome.state.displayed_count == 1
        assert len(counting_store.commits) == commits_before

    async def test_confirm_removal(self, controller, seeded_store):
        await controller.react(ENTRY, USER, ReactionType.HEART)
        await controller.react(ENTRY, USER, ReactionType.HEART)

        outcome = await controller.confirm_removal(ENTRY, USER)

        assert outcome.kind is ReactionOutcomeKind.REMOVED
        assert outcome.state.status is ReactionStatus.NO_REACTION
        assert outcome.state.displayed_count == 0
        assert await entry_count(seeded_store) == 0
        assert await seeded_store.get("support_reactions", f"{ENTRY}_{USER}") is None
        assert (await seeded_store.get("users", USER)).data["supportGiven"] == 0

    async def test_confirm_without_request(self, controller):
        await controller.react(ENTRY, USER, ReactionType.HEART)

        outcome = await controller.confirm_removal(ENTRY, USER)

        assert outcome.reason is FailureReason.NO_REMOVAL_REQUESTED

    async def test_cancel_removal(self, controller):
        await controller.react(ENTRY, USER, ReactionType.HEART)
        await controller.react(ENTRY, USER, ReactionType.HEART)

        state = controller.cancel_removal(ENTRY, USER)

        assert state.removal_requested is False
        assert state.current_type is ReactionType.HEART
        outcome = await controller.confirm_removal(ENTRY, USER)
        assert outcome.reason is FailureReason.NO_REMOVAL_REQUESTED

    async def test_other_type_after_removal_request_changes(self, controller):
        await controller.react(ENTRY, USER, ReactionType.HEART)
        await controller.react(ENTRY, USER, ReactionType.HEART)

        outcome = await controller.react(ENTRY, USER, ReactionType.HUG)

        assert outcome.kind is ReactionOutcomeKind.CHANGED
        assert outcome.state.removal_requested is False


class TestFailures:
    """失败回滚与拒绝。"""

    async def test_failed_give_rolls_back(self, controller, counting_store):
        await controller.load(ENTRY, USER)
        counting_store.fail_commits_with = StoreError(StoreErrorCode.UNAVAILABLE, "offline")

        outcome = await controller.react(ENTRY, USER, ReactionType.HUG)

        assert outcome.kind is ReactionOutcomeKind.FAILED
        assert outcome.reason is FailureReason.BACKEND
        assert outcome.error.retryable is True
        state = controller.state(ENTRY, USER)
        assert state.status is ReactionStatus.NO_REACTION
        assert state.displayed_count == 0
        assert state.current_type is None

    async def test_failed_change_restores_previous_type(self, controller, counting_store):
        await controller.react(ENTRY, USER, ReactionType.HEART)
        counting_store.fail_commits_with = StoreError(StoreErrorCode.PERMISSION_DENIED)

        outcome = await controller.react(ENTRY, USER, ReactionType.STRENGTH)

        assert outcome.reason is FailureReason.BACKEND
        state = controller.state(ENTRY, USER)
        assert state.current_type is ReactionType.HEART
        assert state.displayed_count == 1

    async def test_failed_removal_restores_count(self, controller, counting_store):
        await controller.react(ENTRY, USER, ReactionType.HEART)
        await controller.react(ENTRY, USER, ReactionType.HEART)
        counting_store.fail_commits_with = StoreError(StoreErrorCode.UNAVAILABLE)

        outcome = await controller.confirm_removal(ENTRY, USER)

        assert outcome.kind is ReactionOutcomeKind.FAILED
        state = controller.state(ENTRY, USER)
        assert state.status is ReactionStatus.REACTED
        assert state.displayed_count == 1

    async def test_busy_while_pending(self, seeded_store):
        release = asyncio.Event()

        class SlowRepository(ReactionRepository):
            async def give(self, entry_id, user_id, reaction_type):
                await release.wait()
                return await super().give(entry_id, user_id, reaction_type)

        controller = ReactionController(SlowRepository(seeded_store))
        await controller.load(ENTRY, USER)

        first = asyncio.create_task(controller.react(ENTRY, USER, ReactionType.HEART))
        await asyncio.sleep(0)
        pending = controller.state(ENTRY, USER)
        second = await controller.react(ENTRY, USER, ReactionType.HUG)
        confirm = await controller.confirm_removal(ENTRY, USER)
        release.set()
        outcome = await first

        assert pending.status is ReactionStatus.PENDING
        assert pending.displayed_count == 1
        assert second.reason is FailureReason.BUSY
        assert confirm.reason is FailureReason.BUSY
        assert second.state is None
        assert confirm.state is None
        assert outcome.kind is ReactionOutcomeKind.APPLIED
        assert (await seeded_store.get("community_feed", ENTRY)).data["supportCount"] == 1

    async def test_cancelled_write_leaves_terminal_state(self, seeded_store):
        class HangingRepository(ReactionRepository):
            async def give(self, entry_id, user_id, reaction_type):
                await asyncio.Event().wait()

        controller = ReactionController(HangingRepository(seeded_store))
        await controller.load(ENTRY, USER)

        task = asyncio.create_task(controller.react(ENTRY, USER, ReactionType.HEART))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        state = controller.state(ENTRY, USER)
        assert state.status is ReactionStatus.NO_REACTION
        assert state.displayed_count == 0

    async def test_sign_in_required(self, controller):
        outcome = await controller.react(ENTRY, "", ReactionType.HEART)

        assert outcome.reason is FailureReason.SIGN_IN_REQUIRED
        assert outcome.requires_sign_in is True

    async def test_unknown_type(self, controller):
        outcome = await controller.react(ENTRY, USER, "LAUGH")

        assert outcome.reason is FailureReason.INVALID_INPUT

    async def test_missing_entry(self, controller):
        outcome = await controller.react("missing", USER, ReactionType.HEART)

        assert outcome.reason is FailureReason.BACKEND
        assert outcome.error.kind == ErrorKind.NOT_FOUND
        assert controller.state("missing", USER) is None


class TestObservers:
    """订阅和丢弃本地状态。"""

    async def test_listener_sees_optimistic_state(self, controller):
        seen = []
        unsubscribe = controller.subscribe(seen.append)

        await controller.react(ENTRY, USER, ReactionType.HEART)
        unsubscribe()
        await controller.react(ENTRY, USER, ReactionType.HUG)

        assert [s.status for s in seen] == [
            ReactionStatus.NO_REACTION,
            ReactionStatus.PENDING,
            ReactionStatus.REACTED,
        ]
        assert seen[1].displayed_count == 1

    async def test_discard(self, controller):
        await controller.load(ENTRY, USER)

        controller.discard(ENTRY, USER)

        assert controller.state(ENTRY, USER) is None


class TestUnknownStoredType:
    """已有记录的类型无法识别时，重新反应改写该记录。"""

    @pytest.mark.parametrize("doc_id", [f"{ENTRY}_{USER}", "legacy-doc"])
    async def test_react_rewrites_record_without_counting(self, seeded_store, doc_id):
        seeded_store.seed(
            "support_reactions",
            doc_id,
            {"postId": ENTRY, "userId": USER, "supportType": "CONFETTI"},
        )
        entry = (await seeded_store.get("community_feed", ENTRY)).data
        seeded_store.seed("community_feed", ENTRY, {**entry, "supportCount": 1})
        controller = ReactionController(ReactionRepository(seeded_store))

        loaded = (await controller.load(ENTRY, USER)).unwrap()
        outcome = await controller.react(ENTRY, USER, ReactionType.HEART)

        assert loaded.status is ReactionStatus.NO_REACTION
        assert outcome.kind is ReactionOutcomeKind.APPLIED
        assert outcome.state.current_type is ReactionType.HEART
        assert outcome.state.displayed_count == 1
        assert await entry_count(seeded_store) == 1
        reactions = await seeded_store.query(
            StructuredQuery(
                collection="support_reactions",
                filters=(FieldFilter("userId", FilterOp.EQ, USER),),
            )
        )
        assert [(d.id, d.data["supportType"]) for d in reactions] == [(doc_id, "HEART")]


class TestStateLifetime:
    """本地状态的刷新与容量上限。"""

    async def test_reload_picks_up_other_users(self, seeded_store):
        controller = ReactionController(ReactionRepository(seeded_store))
        await controller.load(ENTRY, "alice")

        await controller.react(ENTRY, "bob", ReactionType.HUG)
        await controller.react(ENTRY, "carol", ReactionType.HOPE)
        refreshed = (await controller.load(ENTRY, "alice")).unwrap()

        assert refreshed.displayed_count == 2
        assert refreshed.status is ReactionStatus.NO_REACTION

    async def test_reload_keeps_removal_request(self, controller):
        await controller.react(ENTRY, USER, ReactionType.HEART)
        await controller.react(ENTRY, USER, ReactionType.HEART)

        refreshed = (await controller.load(ENTRY, USER)).unwrap()

        assert refreshed.removal_requested is True
        assert (await controller.confirm_removal(ENTRY, USER)).kind is ReactionOutcomeKind.REMOVED

    async def test_states_are_bounded(self, seeded_store):
        controller = ReactionController(ReactionRepository(seeded_store), max_states=3)

        for i in range(10):
            await controller.load(ENTRY, f"user-{i}")

        assert controller.state_count == 3
        assert controller.state(ENTRY, "user-0") is None
        assert controller.state(ENTRY, "user-9") is not None

    async def test_pending_state_not_evicted(self, seeded_store):
        release = asyncio.Event()

        class SlowRepository(ReactionRepository):
            async def give(self, entry_id, user_id, reaction_type):
                await release.wait()
                return await super().give(entry_id, user_id, reaction_type)

        controller = ReactionController(SlowRepository(seeded_store), max_states=1)
        task = asyncio.create_task(controller.react(ENTRY, USER, ReactionType.HEART))
        while controller.state(ENTRY, USER) is None or not controller.state(ENTRY, USER).is_pending:
            await asyncio.sleep(0)

        await controller.load("e02", "someone-else")

        assert controller.state(ENTRY, USER).is_pending
        release.set()
        assert (await task).kind is ReactionOutcomeKind.APPLIED
