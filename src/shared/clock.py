"""时间工具。"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """当前 UTC 时间（带时区）。"""
    return datetime.now(timezone.utc)
