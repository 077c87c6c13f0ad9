"""Feed 数据访问错误分类。

把存储层、网络层和数据库驱动的异常统一归类为 FetchError。
"""

import asyncio
from enum import Enum

from sqlalchemy.exc import DBAPIError, OperationalError

from src.store.base import StoreError, StoreErrorCode


class ErrorKind(str, Enum):
    """错误类型枚举。"""

    NETWORK_UNAVAILABLE = "network_unavailable"
    BACKEND_REJECTED = "backend_rejected"  # 权限或校验失败
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


_RETRYABLE_KINDS = frozenset({ErrorKind.NETWORK_UNAVAILABLE, ErrorKind.TIMEOUT})

_STORE_CODE_KINDS: dict[StoreErrorCode, ErrorKind] = {
    StoreErrorCode.UNAVAILABLE: ErrorKind.NETWORK_UNAVAILABLE,
    StoreErrorCode.DEADLINE_EXCEEDED: ErrorKind.TIMEOUT,
    StoreErrorCode.PERMISSION_DENIED: ErrorKind.BACKEND_REJECTED,
    StoreErrorCode.UNAUTHENTICATED: ErrorKind.BACKEND_REJECTED,
    StoreErrorCode.INVALID_ARGUMENT: ErrorKind.BACKEND_REJECTED,
    StoreErrorCode.ALREADY_EXISTS: ErrorKind.BACKEND_REJECTED,
    StoreErrorCode.NOT_FOUND: ErrorKind.NOT_FOUND,
    StoreErrorCode.ABORTED: ErrorKind.UNKNOWN,
    StoreErrorCode.INTERNAL: ErrorKind.UNKNOWN,
}


class FetchError(Exception):
    """数据访问错误。

    Attributes:
        kind: 错误类型
        message: 错误消息
        requires_sign_in: 是否因未登录被拒绝
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        requires_sign_in: bool = False,
    ) -> None:
        self.kind = kind
        self.message = message
        self.requires_sign_in = requires_sign_in
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        """调用方是否可以直接重试（网络不可用或超时）。"""
        return self.kind in _RETRYABLE_KINDS

    def __repr__(self) -> str:
        return f"FetchError(kind={self.kind.value}, message={self.message!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FetchError):
            return NotImplemented
        return (
            self.kind == other.kind
            and self.message == other.message
            and self.requires_sign_in == other.requires_sign_in
        )

    def __hash__(self) -> int:
        return hash((self.kind, self.message, self.requires_sign_in))


def sign_in_required(message: str = "请先登录") -> FetchError:
    """构造“需要登录”错误。"""
    return FetchError(ErrorKind.BACKEND_REJECTED, message, requires_sign_in=True)


def classify_error(exc: BaseException) -> FetchError:
    """把任意异常归类为 FetchError。

    Args:
        exc: 原始异常

    Returns:
        FetchError: 归类后的错误
    """
    if isinstance(exc, FetchError):
        return exc

    if isinstance(exc, StoreError):
        kind = _STORE_CODE_KINDS.get(exc.code, ErrorKind.UNKNOWN)
        return FetchError(
            kind,
            exc.message,
            requires_sign_in=exc.code is StoreErrorCode.UNAUTHENTICATED,
        )

    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return FetchError(ErrorKind.TIMEOUT, "后端请求超时")

    if isinstance(exc, OperationalError):
        return FetchError(ErrorKind.NETWORK_UNAVAILABLE, f"数据库不可用: {exc.orig}")

    if isinstance(exc, (ConnectionError, OSError)):
        return FetchError(ErrorKind.NETWORK_UNAVAILABLE, f"网络不可用: {exc}")

    if isinstance(exc, DBAPIError):
        return FetchError(ErrorKind.UNKNOWN, f"数据库错误: {exc.orig}")

    return FetchError(ErrorKind.UNKNOWN, str(exc) or exc.__class__.__name__)
