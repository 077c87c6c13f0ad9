"""Prometheus 监控中间件。

按路由模板记录 HTTP 请求计数和延迟。
"""

import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from src.monitoring import metrics

UNMATCHED_PATH = "unmatched"


def route_label(request: Request) -> str:
    """返回请求命中的路由模板，例如 /api/reactions/{entry_id}。

    未命中任何路由时返回 "unmatched"，避免任意路径撑大标签基数。
    """
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path if path else UNMATCHED_PATH


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Prometheus 监控中间件。"""

    def __init__(self, app: ASGIApp, excluded_paths: list[str] | None = None) -> None:
        super().__init__(app)
        self.excluded_paths = frozenset(excluded_paths or ["/metrics"])

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.excluded_paths:
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - started

        # 路由匹配发生在 call_next 内部，之后 scope 中才有 route
        path = route_label(request)
        metrics.http_requests_total.labels(
            method=request.method,
            path=path,
            status=str(response.status_code),
        ).inc()
        metrics.http_request_duration_seconds.labels(
            method=request.method,
            path=path,
        ).observe(elapsed)

        return response
