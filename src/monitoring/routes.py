"""Prometheus 抓取端点。"""

from fastapi import APIRouter, Query, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from src.config import get_settings

router = APIRouter(tags=["monitoring"])


@router.get("/metrics", include_in_schema=False)
async def metrics(
    name: list[str] = Query(default=[], alias="name[]", description="只导出这些指标"),
) -> Response:
    """导出 Prometheus 文本格式的指标。

    监控关闭时返回 404；传入 name[] 时只导出对应的样本。
    """
    if not get_settings().prometheus_enabled:
        return Response(status_code=status.HTTP_404_NOT_FOUND)

    registry = REGISTRY.restricted_registry(name) if name else REGISTRY
    return Response(content=generate_latest(registry), media_type=CONTENT_TYPE_LATEST)
