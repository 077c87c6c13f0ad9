"""API 公共依赖。

提供服务实例、当前用户和 FetchError 到 HTTP 状态码的映射。
"""

import logging
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from src.feed.domain.errors import ErrorKind, FetchError
from src.feed.services.feed_service import FeedService
from src.reaction.services.reaction_controller import ReactionController

logger = logging.getLogger(__name__)

_KIND_STATUS: dict[ErrorKind, int] = {
    ErrorKind.NETWORK_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.TIMEOUT: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.BACKEND_REJECTED: status.HTTP_403_FORBIDDEN,
    ErrorKind.UNKNOWN: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def get_feed_service(request: Request) -> FeedService:
    """从应用状态获取 FeedService。"""
    return request.app.state.feed_service


def get_reaction_controller(request: Request) -> ReactionController:
    """从应用状态获取 ReactionController。"""
    return request.app.state.reaction_controller


async def get_current_user_id(
    x_user_id: Annotated[str | None, Header()] = None,
) -> str:
    """当前用户 ID（X-User-Id 请求头），缺失则 401。"""
    if not x_user_id or not x_user_id.strip():
        logger.debug("请求缺少 X-User-Id")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="must be signed in",
        )
    return x_user_id.strip()


def http_error_for(error: FetchError) -> HTTPException:
    """把 FetchError 映射为 HTTPException。"""
    if error.requires_sign_in:
        return HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="must be signed in",
        )
    return HTTPException(
        status_code=_KIND_STATUS.get(error.kind, status.HTTP_500_INTERNAL_SERVER_ERROR),
        detail={"kind": error.kind.value, "message": error.message, "retryable": error.retryable},
    )


FeedServiceDep = Annotated[FeedService, Depends(get_feed_service)]
ReactionControllerDep = Annotated[ReactionController, Depends(get_reaction_controller)]
CurrentUserDep = Annotated[str, Depends(get_current_user_id)]
