"""配置管理模块。

使用 Pydantic 加载和验证环境变量。
"""

from typing import Literal

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# 加载 .env 文件
load_dotenv()


class Settings(BaseSettings):
    """应用配置。

    从环境变量加载配置，使用 Pydantic 进行验证。
    """

    # 文档存储配置
    database_url: str = Field(
        default="sqlite:///./community_feed.db",
        description="数据库连接地址"
    )
    document_store_backend: Literal["sql", "memory"] = Field(
        default="sql",
        description="文档存储后端：sql 或 memory"
    )

    # 日志配置
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="日志级别",
        validate_default=True,  # 确保默认值也经过验证
    )

    # 监控配置
    prometheus_enabled: bool = Field(
        default=True, description="是否启用 Prometheus 监控"
    )

    # 分页配置
    feed_default_page_size: int = Field(
        default=15, ge=1, le=100,
        description="默认每页条数"
    )
    feed_max_page_size: int = Field(
        default=100, ge=1, le=500,
        description="API 允许的最大每页条数"
    )
    feed_fetch_ceiling: int = Field(
        default=1000, ge=10, le=10000,
        description="单次后端查询的最大文档数（成本上限）"
    )

    # 搜索配置
    search_widen_factor: int = Field(
        default=2, ge=1, le=10,
        description="搜索时放大抓取窗口的倍数，弥补客户端过滤造成的缩水"
    )
    search_min_token_length: int = Field(
        default=2, ge=1, le=10,
        description="搜索词最小长度，短于该长度的词被丢弃"
    )

    # 筛选元数据配置
    metadata_cache_ttl_seconds: int = Field(
        default=600, ge=0, le=86400,
        description="筛选元数据缓存有效期（秒），默认 10 分钟"
    )
    metadata_sample_size: int = Field(
        default=500, ge=1, le=5000,
        description="计算元数据时采样的最近条目数"
    )
    metadata_popular_tag_limit: int = Field(
        default=20, ge=1, le=100,
        description="热门标签保留数量"
    )

    # 相似条目（twins）配置
    twin_level_tolerance: int = Field(
        default=2, ge=0, le=9,
        description="强度等级容差（±）"
    )
    twin_result_limit: int = Field(
        default=10, ge=1, le=100,
        description="返回的相似条目上限"
    )
    twin_fetch_window: int = Field(
        default=50, ge=1, le=1000,
        description="本地排序前从后端抓取的候选条目数"
    )
    max_tag_constraints: int = Field(
        default=10, ge=1, le=30,
        description="单个数组成员查询允许的最大标签数"
    )

    # 支持反应配置
    track_user_support_stats: bool = Field(
        default=True,
        description="反应写入时是否同步更新用户的 supportGiven 计数"
    )
    reaction_state_capacity: int = Field(
        default=10_000, ge=1, le=1_000_000,
        description="进程内保留的反应状态数量上限，超出时淘汰最久未用的状态"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """验证并标准化日志级别。"""
        if isinstance(v, str):
            return v.upper()
        return v


# 全局缓存，用于测试时清除
_settings_cache: Settings | None = None


def get_settings() -> Settings:
    """获取配置单例。

    使用全局缓存确保配置只加载一次。

    Returns:
        Settings: 配置实例
    """
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings()
    return _settings_cache


def clear_settings_cache() -> None:
    """清除配置缓存。

    主要用于测试场景。
    """
    global _settings_cache
    _settings_cache = None
