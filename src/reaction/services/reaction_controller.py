"""支持反应控制器。

每个 (entry_id, user_id) 维护一个三态状态机：NO_REACTION、REACTED、PENDING。

- 首次反应：乐观地 +1 并进入 PENDING，写入成功后进入 REACTED
- 换一种反应：乐观地切换类型，计数不变
- 重复同一种反应：不写入，返回 REMOVAL_NEEDS_CONFIRMATION，
  confirm_removal 后才删除并 -1
- 写入失败：恢复到操作前的类型和计数
- PENDING 期间的新操作直接以 BUSY 拒绝
"""

import asyncio
import logging
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import replace

from returns.result import Failure, Result, Success

from src.feed.domain.errors import ErrorKind, FetchError, classify_error, sign_in_required
from src.monitoring import reaction_outcomes_total, record
from src.reaction.domain.models import (
    FailureReason,
    ReactionOutcome,
    ReactionOutcomeKind,
    ReactionState,
    ReactionStatus,
    ReactionType,
)
from src.reaction.infrastructure.repository import ReactionRepository
from src.reaction.logging_utils import ReactionLogger, get_reaction_logger

logger = logging.getLogger(__name__)

StateKey = tuple[str, str]
StateListener = Callable[[ReactionState], None]


class ReactionController:
    """支持反应状态机。

    状态只在事件循环线程内修改；进入 PENDING 与检查 PENDING 之间没有 await，
    因此同一 key 上不会出现两个并发写入。

    本地状态按最近使用顺序最多保留 max_states 个，超出时淘汰最久未用的
    非 PENDING 状态。
    """

    def __init__(
        self,
        repository: ReactionRepository,
        reaction_logger: ReactionLogger | None = None,
        max_states: int = 10_000,
    ) -> None:
        """初始化控制器。

        Args:
            repository: 支持反应仓库
            reaction_logger: 结构化日志记录器
            max_states: 本地状态数量上限
        """
        self._repository = repository
        self._log = reaction_logger or get_reaction_logger()
        self._max_states = max_states
        self._states: OrderedDict[StateKey, ReactionState] = OrderedDict()
        self._load_locks: dict[StateKey, asyncio.Lock] = {}
        self._listeners: list[StateListener] = []

    # ==================== 状态访问 ====================

    def state(self, entry_id: str, user_id: str) -> ReactionState | None:
        """当前本地状态，未加载或已被淘汰时返回 None。"""
        return self._states.get((entry_id, user_id))

    @property
    def state_count(self) -> int:
        return len(self._states)

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """订阅状态变化，返回取消订阅函数。"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def discard(self, entry_id: str, user_id: str) -> None:
        """丢弃本地状态（展示层不再显示该条目时调用）。"""
        key = (entry_id, user_id)
        state = self._states.get(key)
        if state is not None and state.is_pending:
            # 进行中的写入完成后会重新写入状态
            return
        self._states.pop(key, None)
        self._load_locks.pop(key, None)

    def _set_state(self, action: str, state: ReactionState) -> None:
        before = self._states.get(state.key, state)
        self._states[state.key] = state
        self._states.move_to_end(state.key)
        self._evict()
        self._log.log_transition(action, before, state)
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.warning("反应状态监听器异常: %s", e)

    def _evict(self) -> None:
        """淘汰最久未用的非 PENDING 状态，直到不超过上限。"""
        overflow = len(self._states) - self._max_states
        if overflow <= 0:
            return
        for key in [k for k, s in self._states.items() if not s.is_pending][:overflow]:
            del self._states[key]
            self._load_locks.pop(key, None)
        logger.debug("已淘汰反应状态，当前数量: %d", len(self._states))

    # ==================== 加载 ====================

    async def load(self, entry_id: str, user_id: str) -> Result[ReactionState, FetchError]:
        """从后端加载用户反应和条目计数。

        已在 PENDING 的状态不会被覆盖；类型不变时保留未确认的移除请求。
        """
        if not user_id:
            return Failure(sign_in_required())
        if not entry_id:
            return Failure(FetchError(ErrorKind.BACKEND_REJECTED, "entry_id 不能为空"))

        try:
            count = await self._repository.get_reaction_count(entry_id)
            if count is None:
                return Failure(FetchError(ErrorKind.NOT_FOUND, f"条目不存在: {entry_id}"))
            existing = await self._repository.find_user_reaction(entry_id, user_id)
        except Exception as e:
            error = classify_error(e)
            logger.error(
                "加载反应状态失败: entry_id=%s, user_id=%s, error=%s",
                entry_id,
                user_id,
                error.message,
                exc_info=True,
            )
            return Failure(error)

        current = self._states.get((entry_id, user_id))
        if current is not None and current.is_pending:
            return Success(current)

        if existing is not None and existing.reaction_type is not None:
            state = ReactionState.reacted(entry_id, user_id, existing.reaction_type, count)
        else:
            state = ReactionState.no_reaction(entry_id, user_id, count)
        if (
            current is not None
            and current.removal_requested
            and state.current_type is current.current_type
        ):
            # 刷新计数时保留尚未确认的移除请求
            state = _with_removal_requested(state)
        self._set_state("load", state)
        return Success(state)

    async def _ensure_loaded(
        self, entry_id: str, user_id: str
    ) -> Result[ReactionState, FetchError]:
        key = (entry_id, user_id)
        state = self._states.get(key)
        if state is not None:
            return Success(state)

        lock = self._load_locks.setdefault(key, asyncio.Lock())
        try:
            async with lock:
                state = self._states.get(key)
                if state is not None:
                    return Success(state)
                return await self.load(entry_id, user_id)
        finally:
            if not lock.locked() and self._load_locks.get(key) is lock:
                del self._load_locks[key]

    # ==================== 状态转换 ====================

    async def react(
        self,
        entry_id: str,
        user_id: str,
        reaction_type: ReactionType | str,
    ) -> ReactionOutcome:
        """对条目做出反应。

        Args:
            entry_id: 条目 ID
            user_id: 当前用户 ID（为空表示未登录）
            reaction_type: 反应类型

        Returns:
            ReactionOutcome: APPLIED、CHANGED、REMOVAL_NEEDS_CONFIRMATION 或 FAILED
        """
        if not user_id:
            return self._finish(
                "react", ReactionOutcome.failed(FailureReason.SIGN_IN_REQUIRED, error=sign_in_required())
            )
        requested = (
            reaction_type
            if isinstance(reaction_type, ReactionType)
            else ReactionType.from_string(reaction_type)
        )
        if not entry_id or requested is None:
            return self._finish(
                "react",
                ReactionOutcome.failed(
                    FailureReason.INVALID_INPUT,
                    error=FetchError(ErrorKind.BACKEND_REJECTED, f"无效的反应: {reaction_type!r}"),
                ),
            )

        loaded = await self._ensure_loaded(entry_id, user_id)
        match loaded:
            case Failure(error):
                return self._finish(
                    "react", ReactionOutcome.failed(FailureReason.BACKEND, error=error)
                )
            case Success(state):
                pass

        # 加载期间可能有其他调用修改了状态
        state = self._states.get((entry_id, user_id), state)
        if state.is_pending:
            return self._finish("react", ReactionOutcome.failed(FailureReason.BUSY))

        if state.status is ReactionStatus.NO_REACTION:
            return await self._write(
                "react",
                state,
                state.pending(requested, state.displayed_count + 1),
                lambda: self._repository.give(entry_id, user_id, requested),
                ReactionOutcomeKind.APPLIED,
            )

        if state.current_type is requested:
            requested_removal = _with_removal_requested(state)
            self._set_state("request_removal", requested_removal)
            return self._finish(
                "react",
                ReactionOutcome(ReactionOutcomeKind.REMOVAL_NEEDS_CONFIRMATION, state=requested_removal),
            )

        return await self._write(
            "react",
            state,
            state.pending(requested, state.displayed_count),
            lambda: self._repository.change(entry_id, user_id, requested),
            ReactionOutcomeKind.CHANGED,
        )

    async def confirm_removal(self, entry_id: str, user_id: str) -> ReactionOutcome:
        """确认移除之前请求移除的反应。"""
        if not user_id:
            return self._finish(
                "confirm_removal",
                ReactionOutcome.failed(FailureReason.SIGN_IN_REQUIRED, error=sign_in_required()),
            )

        state = self._states.get((entry_id, user_id))
        if state is not None and state.is_pending:
            return self._finish(
                "confirm_removal", ReactionOutcome.failed(FailureReason.BUSY)
            )
        if state is None or state.status is not ReactionStatus.REACTED or not state.removal_requested:
            return self._finish(
                "confirm_removal",
                ReactionOutcome.failed(FailureReason.NO_REMOVAL_REQUESTED, state=state),
            )

        return await self._write(
            "confirm_removal",
            _with_removal_requested(state, False),
            state.pending(None, max(state.displayed_count - 1, 0)),
            lambda: self._repository.remove(entry_id, user_id),
            ReactionOutcomeKind.REMOVED,
        )

    def cancel_removal(self, entry_id: str, user_id: str) -> ReactionState | None:
        """取消移除请求，状态保持 REACTED。"""
        state = self._states.get((entry_id, user_id))
        if state is None or state.is_pending or not state.removal_requested:
            return state
        state = _with_removal_requested(state, False)
        self._set_state("cancel_removal", state)
        return state

    async def _write(
        self,
        action: str,
        previous: ReactionState,
        pending: ReactionState,
        write: Callable[[], Awaitable[bool | None]],
        success_kind: ReactionOutcomeKind,
    ) -> ReactionOutcome:
        """乐观写入：先进入 PENDING，再根据写入结果确认或回滚。

        write 返回 False 表示写入成功但后端计数未变。
        """
        self._set_state(action, pending)
        try:
            written = await write()
        except asyncio.CancelledError:
            self._set_state("rollback", previous)
            raise
        except Exception as e:
            error = classify_error(e)
            self._set_state("rollback", previous)
            self._log.log_rollback(previous, error.kind.value, error.message)
            return self._finish(
                action, ReactionOutcome.failed(FailureReason.BACKEND, state=previous, error=error)
            )

        settled = pending.settle()
        if written is False:
            # 后端计数没有变化（例如改写了旧记录），撤销乐观的计数调整
            settled = replace(settled, displayed_count=previous.displayed_count)
        self._set_state(action, settled)
        return self._finish(action, ReactionOutcome(success_kind, state=settled))

    def _finish(self, action: str, outcome: ReactionOutcome) -> ReactionOutcome:
        record(reaction_outcomes_total, outcome=outcome.kind.value)
        self._log.log_outcome(action, outcome)
        return outcome


def _with_removal_requested(state: ReactionState, requested: bool = True) -> ReactionState:
    return ReactionState(
        entry_id=state.entry_id,
        user_id=state.user_id,
        status=state.status,
        current_type=state.current_type,
        displayed_count=state.displayed_count,
        removal_requested=requested,
    )
