"""公共 Pydantic 类型。"""

from datetime import datetime, timezone
from typing import Annotated

from pydantic import AfterValidator


def _as_utc(value: datetime) -> datetime:
    """naive datetime 视为 UTC，其他时区统一换算到 UTC。"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# 条目时间以 epoch 毫秒存储，响应中统一输出带 +00:00 的 ISO 时间
UTCDatetime = Annotated[datetime, AfterValidator(_as_utc)]
