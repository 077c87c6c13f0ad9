"""社区条目文档映射。

文档字段在历史版本中出现过多个名称。这里为每个概念定义一个规范字段名，
并显式列出兼容的旧字段名，只在边界处解码一次。
"""

import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from src.feed.domain.models import MAX_LEVEL, MIN_LEVEL, Entry

logger = logging.getLogger(__name__)

# 规范字段名
F_AUTHOR_ID = "userId"
F_AUTHOR_NAME = "anonymousUsername"
F_SOURCE_ENTRY_ID = "chaosEntryId"
F_TITLE = "title"
F_BODY = "description"
F_LEVEL = "chaosLevel"
F_TAGS = "tags"
F_WINS = "miniWins"
F_CREATED_AT = "createdAt"
F_REACTION_COUNT = "supportCount"
F_TWIN_COUNT = "twinCount"
F_IS_REPORTED = "isReported"
F_IS_MODERATED = "isModerated"

# 规范字段名 -> 兼容的旧字段名（按优先级）
LEGACY_ALIASES: dict[str, tuple[str, ...]] = {
    F_AUTHOR_ID: ("authorId",),
    F_AUTHOR_NAME: ("username",),
    F_BODY: ("content", "body"),
    F_LEVEL: ("level",),
    F_WINS: ("wins",),
    F_CREATED_AT: ("timestamp",),
    F_REACTION_COUNT: ("reactionCount",),
}

# 小于该值的数值时间戳按秒解释，否则按毫秒解释
_EPOCH_MILLIS_THRESHOLD = 100_000_000_000

_LEGACY_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


class EntryDecodeError(ValueError):
    """条目文档无法解码。"""

    def __init__(self, doc_id: str, reason: str) -> None:
        self.doc_id = doc_id
        self.reason = reason
        super().__init__(f"条目 {doc_id} 解码失败: {reason}")


def read_field(data: dict[str, Any], canonical: str) -> Any:
    """按规范名读取字段，缺失时依次尝试旧字段名。"""
    value = data.get(canonical)
    if value is not None:
        return value
    for alias in LEGACY_ALIASES.get(canonical, ()):
        value = data.get(alias)
        if value is not None:
            return value
    return None


def to_epoch_millis(value: datetime) -> int:
    """datetime 转换为毫秒时间戳（naive 视为 UTC）。"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def parse_timestamp(value: Any) -> datetime | None:
    """解析存储中的时间值。

    支持毫秒时间戳、秒时间戳、ISO 8601 字符串、"YYYY-MM-DD HH:MM:SS" 字符串和 datetime。
    无法解析时返回 None。
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    if isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        seconds = value / 1000 if abs(value) >= _EPOCH_MILLIS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            try:
                parsed = datetime.strptime(text, _LEGACY_DATETIME_FORMAT)
            except ValueError:
                return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)

    return None


def read_created_at(data: dict[str, Any]) -> datetime | None:
    return parse_timestamp(read_field(data, F_CREATED_AT))


def read_level(data: dict[str, Any]) -> int | None:
    """读取强度等级，缺失或越界时返回 None。"""
    value = read_field(data, F_LEVEL)
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int):
        return None
    if not MIN_LEVEL <= value <= MAX_LEVEL:
        return None
    return value


def read_tags(data: dict[str, Any]) -> list[str]:
    """读取标签列表，缺失或格式错误时返回空列表。"""
    return _read_string_list(data, F_TAGS)


def _read_string_list(data: dict[str, Any], canonical: str) -> list[str]:
    value = read_field(data, canonical)
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str) and item.strip()]


def _read_count(data: dict[str, Any], canonical: str) -> int:
    value = read_field(data, canonical)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return max(int(value), 0)


def _read_str(data: dict[str, Any], canonical: str) -> str:
    value = read_field(data, canonical)
    return value if isinstance(value, str) else ""


def decode_entry(doc_id: str, data: dict[str, Any] | None) -> Entry:
    """把存储文档解码为 Entry。

    Args:
        doc_id: 文档 ID（文档内缺少 id 字段时使用）
        data: 文档内容

    Returns:
        Entry: 解码后的条目

    Raises:
        EntryDecodeError: 文档缺少强度等级或创建时间等必需字段
    """
    if not isinstance(data, dict):
        raise EntryDecodeError(doc_id, "文档内容不是对象")

    level = read_level(data)
    if level is None:
        raise EntryDecodeError(doc_id, f"强度等级缺失或无效: {read_field(data, F_LEVEL)!r}")

    created_at = read_created_at(data)
    if created_at is None:
        raise EntryDecodeError(doc_id, f"创建时间缺失或无效: {read_field(data, F_CREATED_AT)!r}")

    entry_id = data.get("id") if isinstance(data.get("id"), str) and data.get("id") else doc_id
    author_id = read_field(data, F_AUTHOR_ID)
    source_entry_id = data.get(F_SOURCE_ENTRY_ID)

    try:
        return Entry(
            id=entry_id,
            author_id=author_id if isinstance(author_id, str) and author_id else None,
            author_name=_read_str(data, F_AUTHOR_NAME),
            source_entry_id=source_entry_id if isinstance(source_entry_id, str) and source_entry_id else None,
            title=_read_str(data, F_TITLE),
            body=_read_str(data, F_BODY),
            level=level,
            tags=tuple(read_tags(data)),
            wins=tuple(_read_string_list(data, F_WINS)),
            created_at=created_at,
            reaction_count=_read_count(data, F_REACTION_COUNT),
            twin_count=_read_count(data, F_TWIN_COUNT),
            is_reported=data.get(F_IS_REPORTED) is True,
            is_moderated=data.get(F_IS_MODERATED) is True,
        )
    except ValidationError as e:
        raise EntryDecodeError(doc_id, str(e)) from e


def encode_entry(entry: Entry) -> dict[str, Any]:
    """把 Entry 编码为存储文档（仅使用规范字段名）。"""
    data: dict[str, Any] = {
        "id": entry.id,
        F_AUTHOR_NAME: entry.author_name,
        F_TITLE: entry.title,
        F_BODY: entry.body,
        F_LEVEL: entry.level,
        F_TAGS: list(entry.tags),
        F_WINS: list(entry.wins),
        F_CREATED_AT: to_epoch_millis(entry.created_at),
        F_REACTION_COUNT: entry.reaction_count,
        F_TWIN_COUNT: entry.twin_count,
        F_IS_REPORTED: entry.is_reported,
        F_IS_MODERATED: entry.is_moderated,
    }
    if entry.author_id:
        data[F_AUTHOR_ID] = entry.author_id
    if entry.source_entry_id:
        data[F_SOURCE_ENTRY_ID] = entry.source_entry_id
    return data
