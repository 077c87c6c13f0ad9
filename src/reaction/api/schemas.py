"""支持反应 API 数据模型。"""

from pydantic import BaseModel, Field

from src.reaction.domain.models import ReactionOutcome, ReactionState


class ReactionRequest(BaseModel):
    """反应请求体。"""

    type: str = Field(..., min_length=1, description="反应类型（HEART、HUG、SOLIDARITY、STRENGTH、HOPE）")


class ReactionStateResponse(BaseModel):
    """反应状态响应模型。"""

    entry_id: str = Field(..., description="条目 ID")
    status: str = Field(..., description="状态（no_reaction、reacted、pending）")
    current_type: str | None = Field(None, description="当前反应类型")
    displayed_count: int = Field(..., description="展示的反应数")
    removal_requested: bool = Field(False, description="是否等待确认移除")

    @classmethod
    def from_state(cls, state: ReactionState) -> "ReactionStateResponse":
        return cls(
            entry_id=state.entry_id,
            status=state.status.value,
            current_type=state.current_type.value if state.current_type else None,
            displayed_count=state.displayed_count,
            removal_requested=state.removal_requested,
        )


class ReactionOutcomeResponse(BaseModel):
    """反应操作结果响应模型。"""

    outcome: str = Field(..., description="结果类型")
    state: ReactionStateResponse | None = Field(None, description="操作后的状态")

    @classmethod
    def from_outcome(cls, outcome: ReactionOutcome) -> "ReactionOutcomeResponse":
        return cls(
            outcome=outcome.kind.value,
            state=ReactionStateResponse.from_state(outcome.state) if outcome.state else None,
        )
