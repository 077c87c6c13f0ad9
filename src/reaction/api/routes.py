"""支持反应 API 路由。

提供读取反应状态、做出反应和确认/取消移除的 HTTP 端点。
"""

import logging

from fastapi import APIRouter, HTTPException, status
from returns.result import Failure, Success

from src.api.dependencies import CurrentUserDep, ReactionControllerDep, http_error_for
from src.reaction.api.schemas import (
    ReactionOutcomeResponse,
    ReactionRequest,
    ReactionStateResponse,
)
from src.reaction.domain.models import FailureReason, ReactionOutcome

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reactions", tags=["reactions"])

_REASON_STATUS: dict[FailureReason, int] = {
    FailureReason.BUSY: status.HTTP_409_CONFLICT,
    FailureReason.NO_REMOVAL_REQUESTED: status.HTTP_409_CONFLICT,
    FailureReason.INVALID_INPUT: status.HTTP_422_UNPROCESSABLE_CONTENT,
    FailureReason.SIGN_IN_REQUIRED: status.HTTP_401_UNAUTHORIZED,
}


def _to_response(outcome: ReactionOutcome) -> ReactionOutcomeResponse:
    """成功结果转换为响应，失败结果抛出对应的 HTTPException。"""
    if outcome.succeeded:
        return ReactionOutcomeResponse.from_outcome(outcome)

    if outcome.reason is FailureReason.BACKEND and outcome.error is not None:
        raise http_error_for(outcome.error)
    if outcome.requires_sign_in:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="must be signed in")
    raise HTTPException(
        status_code=_REASON_STATUS.get(outcome.reason, status.HTTP_400_BAD_REQUEST),
        detail={"reason": outcome.reason.value if outcome.reason else None},
    )


@router.get(
    "/{entry_id}",
    response_model=ReactionStateResponse,
    summary="获取反应状态",
)
async def get_reaction(
    entry_id: str,
    controller: ReactionControllerDep,
    user_id: CurrentUserDep,
) -> ReactionStateResponse:
    """当前用户在条目上的反应状态。

    每次都从后端重新加载，展示计数包含其他用户的反应；进行中的写入保持 PENDING。
    """
    result = await controller.load(entry_id, user_id)
    match result:
        case Success(loaded):
            return ReactionStateResponse.from_state(loaded)
        case Failure(error):
            raise http_error_for(error)


@router.post(
    "/{entry_id}",
    response_model=ReactionOutcomeResponse,
    summary="做出反应",
    description="首次反应计数 +1；换一种反应只改类型；重复同一种反应需要确认移除。",
)
async def react(
    entry_id: str,
    request: ReactionRequest,
    controller: ReactionControllerDep,
    user_id: CurrentUserDep,
) -> ReactionOutcomeResponse:
    """对条目做出反应。"""
    outcome = await controller.react(entry_id, user_id, request.type)
    return _to_response(outcome)


@router.post(
    "/{entry_id}/confirm-removal",
    response_model=ReactionOutcomeResponse,
    summary="确认移除反应",
)
async def confirm_removal(
    entry_id: str,
    controller: ReactionControllerDep,
    user_id: CurrentUserDep,
) -> ReactionOutcomeResponse:
    """确认移除之前请求移除的反应。"""
    outcome = await controller.confirm_removal(entry_id, user_id)
    return _to_response(outcome)


@router.post(
    "/{entry_id}/cancel-removal",
    response_model=ReactionStateResponse,
    summary="取消移除反应",
)
async def cancel_removal(
    entry_id: str,
    controller: ReactionControllerDep,
    user_id: CurrentUserDep,
) -> ReactionStateResponse:
    """取消移除请求。"""
    state = controller.cancel_removal(entry_id, user_id)
    if state is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="反应状态未加载")
    return ReactionStateResponse.from_state(state)
