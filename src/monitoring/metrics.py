"""Prometheus 指标定义。

定义所有应用级别的 Prometheus 监控指标。
"""

import logging

from prometheus_client import Counter, Histogram

logger = logging.getLogger(__name__)

# HTTP 请求计数器
# 标签: method (HTTP 方法), path (请求路径), status (HTTP 状态码)
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

# HTTP 请求延迟直方图
# 标签: method (HTTP 方法), path (请求路径)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0),
)

# 后端查询次数
# 标签: operation (page, page_estimate, search, metadata, twins, ...)
backend_fetches_total = Counter(
    "backend_fetches_total",
    "Total document store fetches",
    ["operation"],
)

# 元数据缓存命中情况
# 标签: result (hit, miss)
metadata_cache_events_total = Counter(
    "metadata_cache_events_total",
    "Filter metadata cache lookups",
    ["result"],
)

# 支持反应结果
# 标签: outcome (applied, changed, removal_needs_confirmation, removed, failed)
reaction_outcomes_total = Counter(
    "reaction_outcomes_total",
    "Reaction transitions by outcome",
    ["outcome"],
)

# 被丢弃的过期响应
stale_responses_dropped_total = Counter(
    "stale_responses_dropped_total",
    "Responses discarded because a newer request superseded them",
)


def record(counter: Counter, **labels: str) -> None:
    """递增计数器。

    指标更新失败只记录日志，不影响业务逻辑。
    """
    try:
        from src.config import get_settings

        if not get_settings().prometheus_enabled:
            return
        if labels:
            counter.labels(**labels).inc()
        else:
            counter.inc()
    except Exception as e:
        logger.debug("更新指标失败: %s", e)
