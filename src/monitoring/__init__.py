"""Prometheus 监控模块。

提供 HTTP 请求、后端查询、元数据缓存和支持反应的监控指标。
"""

from src.monitoring.metrics import (
    backend_fetches_total,
    http_request_duration_seconds,
    http_requests_total,
    metadata_cache_events_total,
    reaction_outcomes_total,
    record,
    stale_responses_dropped_total,
)

__all__ = [
    "http_requests_total",
    "http_request_duration_seconds",
    "backend_fetches_total",
    "metadata_cache_events_total",
    "reaction_outcomes_total",
    "stale_responses_dropped_total",
    "record",
]
