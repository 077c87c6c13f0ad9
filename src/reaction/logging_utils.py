"""支持反应结构化日志工具。

记录反应状态转换，日志携带 entry/user 上下文。
"""

import logging

from src.reaction.domain.models import ReactionOutcome, ReactionState


class ReactionLogger:
    """支持反应结构化日志记录器。"""

    def __init__(self, component: str = "controller"):
        """初始化日志记录器。

        Args:
            component: 组件名称
        """
        self.component = component
        self._logger = logging.getLogger(f"src.reaction.{component}")

    def log_transition(
        self,
        action: str,
        before: ReactionState,
        after: ReactionState,
    ) -> None:
        """记录一次状态转换。

        Args:
            action: 触发的动作（react、confirm_removal、rollback 等）
            before: 转换前状态
            after: 转换后状态
        """
        self._logger.debug(
            "反应状态转换",
            extra={
                "event": "reaction_transition",
                "action": action,
                "entry_id": after.entry_id,
                "user_id": after.user_id,
                "from_status": before.status.value,
                "to_status": after.status.value,
                "from_type": before.current_type.value if before.current_type else None,
                "to_type": after.current_type.value if after.current_type else None,
                "displayed_count": after.displayed_count,
            },
        )

    def log_outcome(self, action: str, outcome: ReactionOutcome) -> None:
        """记录操作结果。

        Args:
            action: 动作名称
            outcome: 操作结果
        """
        state = outcome.state
        extra = {
            "event": "reaction_outcome",
            "action": action,
            "outcome": outcome.kind.value,
            "entry_id": state.entry_id if state else None,
            "user_id": state.user_id if state else None,
            "reason": outcome.reason.value if outcome.reason else None,
            "error_kind": outcome.error.kind.value if outcome.error else None,
        }
        if outcome.succeeded:
            self._logger.info("反应操作完成", extra=extra)
        else:
            self._logger.warning("反应操作失败", extra=extra)

    def log_rollback(
        self,
        state: ReactionState,
        error_kind: str,
        error_message: str,
    ) -> None:
        """记录写入失败后的回滚。

        Args:
            state: 回滚后的状态
            error_kind: 错误类型
            error_message: 错误信息
        """
        self._logger.warning(
            "反应写入失败，已回滚",
            extra={
                "event": "reaction_rollback",
                "entry_id": state.entry_id,
                "user_id": state.user_id,
                "restored_status": state.status.value,
                "restored_count": state.displayed_count,
                "error_kind": error_kind,
                "error_message": error_message,
            },
        )


# 全局日志记录器实例
_reaction_logger = ReactionLogger()


def get_reaction_logger() -> ReactionLogger:
    """获取支持反应日志记录器实例。

    Returns:
        ReactionLogger: 日志记录器实例
    """
    return _reaction_logger
