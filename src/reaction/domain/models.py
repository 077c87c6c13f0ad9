"""支持反应领域模型。

定义反应类型、客户端本地反应状态以及反应操作的结果。
"""

from dataclasses import dataclass, replace
from enum import Enum

from src.feed.domain.errors import FetchError


class ReactionType(str, Enum):
    """支持反应类型（封闭枚举）。"""

    HEART = "HEART"
    HUG = "HUG"
    SOLIDARITY = "SOLIDARITY"
    STRENGTH = "STRENGTH"
    HOPE = "HOPE"

    @classmethod
    def from_string(cls, value: str | None) -> "ReactionType | None":
        """大小写不敏感地解析反应类型，未知值返回 None。"""
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


class ReactionStatus(str, Enum):
    """反应状态机的状态。"""

    NO_REACTION = "no_reaction"
    REACTED = "reacted"
    PENDING = "pending"


@dataclass(frozen=True)
class ReactionState:
    """单个 (entry_id, user_id) 的本地反应状态快照。

    PENDING 时 intended_type 为正在写入的目标类型（移除时为 None），
    previous_type 为写入前的类型。current_type 与 displayed_count 是
    展示层看到的（可能是乐观的）值。
    """

    entry_id: str
    user_id: str
    status: ReactionStatus
    current_type: ReactionType | None
    displayed_count: int
    intended_type: ReactionType | None = None
    previous_type: ReactionType | None = None
    removal_requested: bool = False

    @classmethod
    def no_reaction(cls, entry_id: str, user_id: str, displayed_count: int) -> "ReactionState":
        return cls(entry_id, user_id, ReactionStatus.NO_REACTION, None, displayed_count)

    @classmethod
    def reacted(
        cls,
        entry_id: str,
        user_id: str,
        reaction_type: ReactionType,
        displayed_count: int,
    ) -> "ReactionState":
        return cls(entry_id, user_id, ReactionStatus.REACTED, reaction_type, displayed_count)

    @property
    def key(self) -> tuple[str, str]:
        return (self.entry_id, self.user_id)

    @property
    def is_pending(self) -> bool:
        return self.status is ReactionStatus.PENDING

    def pending(
        self,
        intended_type: ReactionType | None,
        displayed_count: int,
    ) -> "ReactionState":
        """进入 PENDING，展示层立即看到目标类型和计数。"""
        return replace(
            self,
            status=ReactionStatus.PENDING,
            current_type=intended_type,
            displayed_count=displayed_count,
            intended_type=intended_type,
            previous_type=self.current_type,
            removal_requested=False,
        )

    def settle(self) -> "ReactionState":
        """写入成功：确认 PENDING 中的目标类型。"""
        if self.intended_type is None:
            return ReactionState.no_reaction(self.entry_id, self.user_id, self.displayed_count)
        return ReactionState.reacted(
            self.entry_id, self.user_id, self.intended_type, self.displayed_count
        )


class ReactionOutcomeKind(str, Enum):
    """反应操作结果类型。"""

    APPLIED = "applied"
    CHANGED = "changed"
    REMOVAL_NEEDS_CONFIRMATION = "removal_needs_confirmation"
    REMOVED = "removed"
    FAILED = "failed"


class FailureReason(str, Enum):
    """反应操作失败原因。"""

    BUSY = "busy"  # 已有进行中的写入
    INVALID_INPUT = "invalid_input"
    SIGN_IN_REQUIRED = "sign_in_required"
    NO_REMOVAL_REQUESTED = "no_removal_requested"
    BACKEND = "backend"


@dataclass(frozen=True)
class ReactionOutcome:
    """反应操作结果。

    state 为操作结束后的本地状态（总是非 PENDING）。
    BUSY 失败时另一写入仍在进行，state 为 None。
    """

    kind: ReactionOutcomeKind
    state: ReactionState | None = None
    reason: FailureReason | None = None
    error: FetchError | None = None

    @property
    def succeeded(self) -> bool:
        return self.kind is not ReactionOutcomeKind.FAILED

    @property
    def requires_sign_in(self) -> bool:
        """是否需要提示用户登录。"""
        if self.reason is FailureReason.SIGN_IN_REQUIRED:
            return True
        return self.error is not None and self.error.requires_sign_in

    @classmethod
    def failed(
        cls,
        reason: FailureReason,
        state: ReactionState | None = None,
        error: FetchError | None = None,
    ) -> "ReactionOutcome":
        return cls(ReactionOutcomeKind.FAILED, state=state, reason=reason, error=error)
